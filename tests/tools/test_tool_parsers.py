import os
from datetime import datetime, timezone

import pytest

from healthmesh.core.exceptions import MalformedOutputError
from healthmesh.core.types import InvocationResult, OutputFormat, Severity, ToolSpec
from healthmesh.tools.k8s_netinspect import K8sNetinspectParser
from healthmesh.tools.netrain import NetrainParser
from healthmesh.tools.secretscan import SecretscanParser

FIXTURES = os.path.join(os.path.dirname(__file__), "../fixtures")


def read_fixture(name: str) -> str:
    with open(os.path.join(FIXTURES, name)) as f:
        return f.read()


def make_result(tool: str, stdout: str) -> InvocationResult:
    return InvocationResult(
        tool=tool,
        timestamp=datetime.now(timezone.utc),
        exit_code=0,
        stdout=stdout,
        stderr="",
        duration=1.2,
    )


@pytest.fixture
def secretscan_parser():
    return SecretscanParser(
        ToolSpec(name="secretscan", command="secretscan", output_format=OutputFormat.JSON)
    )


def test_secretscan_report(secretscan_parser):
    findings = secretscan_parser.parse(
        make_result("secretscan", read_fixture("secretscan_sample.json"))
    )
    assert [f.severity for f in findings] == [
        Severity.CRITICAL,
        Severity.WARNING,
        Severity.ERROR,  # no severity reported
    ]
    assert findings[0].message == "aws-access-key detected in deploy/config.env:12"
    assert findings[2].message == "private-key detected in certs/dev.pem"


def test_secretscan_clean_report(secretscan_parser):
    result = make_result("secretscan", '{"scanned_files": 10, "findings": []}')
    assert secretscan_parser.parse(result) == []


def test_secretscan_finding_without_rule_is_malformed(secretscan_parser):
    result = make_result("secretscan", '{"findings": [{"file": "a.txt", "line": 1}]}')
    with pytest.raises(MalformedOutputError):
        secretscan_parser.parse(result)


def test_k8s_netinspect_report():
    parser = K8sNetinspectParser(
        ToolSpec(name="k8s-netinspect", command="k8s-netinspect", output_format=OutputFormat.JSON)
    )
    findings = parser.parse(
        make_result("k8s-netinspect", read_fixture("k8s_netinspect_sample.json"))
    )
    assert [f.severity for f in findings] == [Severity.WARNING, Severity.INFO, Severity.ERROR]
    assert findings[0].message == "svc/payments: no endpoints ready"


def test_k8s_netinspect_requires_issues_array():
    parser = K8sNetinspectParser(
        ToolSpec(name="k8s-netinspect", command="k8s-netinspect", output_format=OutputFormat.JSON)
    )
    with pytest.raises(MalformedOutputError):
        parser.parse(make_result("k8s-netinspect", '{"findings": []}'))


def test_netrain_markers():
    parser = NetrainParser(ToolSpec(name="netrain", command="netrain"))
    findings = parser.parse(make_result("netrain", read_fixture("netrain_sample.txt")))
    assert [f.severity for f in findings] == [
        Severity.WARNING,
        Severity.CRITICAL,
        Severity.ERROR,
    ]
    assert "port sweep" in findings[1].message
