import logging
from datetime import datetime, timezone
from unittest.mock import Mock, patch

import requests
from rich.console import Console

from healthmesh.core.alerts import (
    AlertSink,
    ConsoleAlertSink,
    FanoutAlertSink,
    LoggingAlertSink,
    WebhookAlertSink,
)
from healthmesh.core.types import Finding, HealthState, Severity

FINDINGS = [
    Finding(
        tool="secretscan",
        severity=Severity.CRITICAL,
        message="aws-access-key detected in deploy/config.env:12",
        timestamp=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
    )
]


def test_logging_sink(caplog):
    sink = LoggingAlertSink()
    with caplog.at_level(logging.INFO, logger="healthmesh.core.alerts"):
        sink.notify("secretscan", HealthState.HEALTHY, HealthState.DEGRADED, FINDINGS)
    record = caplog.records[-1]
    assert record.levelno == logging.WARNING
    assert "healthy -> degraded" in record.getMessage()
    assert "aws-access-key" in record.getMessage()


def test_console_sink_prints_panel():
    console = Console(record=True, width=120)
    ConsoleAlertSink(console).notify(
        "secretscan", HealthState.UNKNOWN, HealthState.FAILING, FINDINGS
    )
    text = console.export_text()
    assert "secretscan health" in text
    assert "failing" in text
    assert "aws-access-key" in text


def test_webhook_sink_posts_payload():
    with patch("healthmesh.core.alerts.requests.post") as mock_post:
        mock_post.return_value = Mock(status_code=204)
        WebhookAlertSink("https://hooks.example.com/mesh", timeout=3).notify(
            "secretscan", HealthState.HEALTHY, HealthState.DEGRADED, FINDINGS
        )

    mock_post.assert_called_once()
    assert mock_post.call_args.args == ("https://hooks.example.com/mesh",)
    assert mock_post.call_args.kwargs["timeout"] == 3
    assert mock_post.call_args.kwargs["json"] == {
        "tool": "secretscan",
        "old_state": "healthy",
        "new_state": "degraded",
        "findings": [
            {
                "severity": "critical",
                "message": "aws-access-key detected in deploy/config.env:12",
                "timestamp": "2026-03-01T12:00:00+00:00",
            }
        ],
    }


def test_webhook_sink_logs_delivery_errors(caplog):
    with patch(
        "healthmesh.core.alerts.requests.post",
        side_effect=requests.exceptions.ConnectionError("refused"),
    ):
        WebhookAlertSink("https://hooks.example.com/mesh").notify(
            "netrain", HealthState.HEALTHY, HealthState.FAILING, []
        )
    assert any("Failed to deliver 'netrain' alert" in r.getMessage() for r in caplog.records)


def test_fanout_continues_after_failing_sink():
    broken = Mock(spec=AlertSink)
    broken.notify.side_effect = RuntimeError("down")
    working = Mock(spec=AlertSink)

    FanoutAlertSink([broken, working]).notify(
        "netrain", HealthState.UNKNOWN, HealthState.HEALTHY, []
    )
    working.notify.assert_called_once_with("netrain", HealthState.UNKNOWN, HealthState.HEALTHY, [])
