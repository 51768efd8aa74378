# tests/integration/test_cli.py
"""End-to-end runs of the healthmesh CLI against small Python tools."""

import sys

import pytest
import yaml
from typer.testing import CliRunner

from healthmesh.cli import app

runner = CliRunner()


def python_tool(name: str, script: str, **extra) -> dict:
    entry = {
        "name": name,
        "command": sys.executable,
        "args": ["-c", script],
        "interval": 60,
        "timeout": 10,
    }
    entry.update(extra)
    return entry


@pytest.fixture
def write_config(tmp_path):
    def _write(tools, **settings):
        path = tmp_path / "healthmesh.yaml"
        data = {"alerts": {"console": False}, "tools": tools}
        data.update(settings)
        path.write_text(yaml.safe_dump(data))
        return str(path)

    return _write


def test_validate_lists_tools(write_config):
    config = write_config([
        python_tool("secretscan", "print('[]')", format="json"),
        python_tool("netrain", "print('ok')", parser="netrain"),
    ])
    result = runner.invoke(app, ["validate", "--config", config])
    assert result.exit_code == 0, result.output
    assert "secretscan" in result.output
    assert "netrain" in result.output
    assert "Configuration OK" in result.output


def test_validate_reports_configuration_errors(write_config):
    config = write_config([{"name": "broken", "command": "x", "interval": -5}])
    result = runner.invoke(app, ["validate", "--config", config])
    assert result.exit_code == 2
    assert "Configuration error" in result.output


def test_missing_config_file(tmp_path):
    result = runner.invoke(app, ["once", "--config", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 2


def test_once_all_healthy(write_config):
    config = write_config([
        python_tool("secretscan", "print('{\"findings\": []}')", parser="secretscan"),
        python_tool("netrain", "print('capture ok')", parser="netrain"),
    ])
    result = runner.invoke(app, ["once", "--config", config])
    assert result.exit_code == 0, result.output
    assert "healthy" in result.output


def test_once_degraded_is_not_an_error(write_config):
    config = write_config([
        python_tool("netrain", "print('anomaly detected on eth0')", parser="netrain"),
    ])
    result = runner.invoke(app, ["once", "--config", config])
    assert result.exit_code == 0, result.output
    assert "degraded" in result.output


def test_once_malformed_output_exits_nonzero(write_config):
    config = write_config([
        python_tool("secretscan", "print('not json')", format="json"),
    ])
    result = runner.invoke(app, ["once", "--config", config])
    assert result.exit_code == 1
    assert "unknown" in result.output


def test_once_launch_error_with_threshold_one(write_config):
    config = write_config(
        [{"name": "cargocrypt", "command": "/nonexistent/cargocrypt", "interval": 60}],
        failure_threshold=1,
    )
    result = runner.invoke(app, ["once", "--config", config])
    assert result.exit_code == 1
    assert "failing" in result.output
