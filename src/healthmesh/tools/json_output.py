# src/healthmesh/tools/json_output.py
import json
import logging
from typing import Any

from ..core.exceptions import MalformedOutputError
from ..core.types import Finding, InvocationResult, OutputFormat, Severity
from .base import OutputParser

logger = logging.getLogger(__name__)


class JsonOutputParser(OutputParser):
    """
    Parser for tools that print a JSON document.

    The document must be either an array of records or an object whose
    `records_key` holds such an array. Every record must be an object.
    Anything else fails the whole parse; records are never partially kept.
    """

    name = "json"
    output_format = OutputFormat.JSON
    severity_field = "severity"
    message_fields = ("message", "description", "msg", "detail")

    @property
    def records_key(self) -> str:
        return self.spec.records_key

    def parse(self, result: InvocationResult) -> list[Finding]:
        document = self.decode(result.stdout)
        records = self.extract_records(document)

        findings = []
        for index, record in enumerate(records):
            if not isinstance(record, dict):
                raise MalformedOutputError(
                    f"{result.tool}: record {index} is a {type(record).__name__}, expected an object"
                )
            findings.append(
                self.make_finding(
                    result, self.record_severity(record), self.record_message(record)
                )
            )

        logger.debug(f"Parsed {len(findings)} finding(s) from '{result.tool}' JSON output")
        return findings

    def decode(self, stdout: str) -> Any:
        if not stdout or not stdout.strip():
            raise MalformedOutputError(f"{self.spec.name}: produced no output, expected JSON")
        try:
            return json.loads(stdout)
        except json.JSONDecodeError as e:
            raise MalformedOutputError(f"{self.spec.name}: failed to parse JSON output: {e}") from e

    def extract_records(self, document: Any) -> list:
        if isinstance(document, list):
            return document
        if isinstance(document, dict):
            records = document.get(self.records_key)
            if isinstance(records, list):
                return records
            raise MalformedOutputError(
                f"{self.spec.name}: JSON object has no '{self.records_key}' array"
            )
        raise MalformedOutputError(
            f"{self.spec.name}: top-level JSON value is a {type(document).__name__}, "
            f"expected an array or object"
        )

    def record_severity(self, record: dict) -> Severity:
        raw = record.get(self.severity_field)
        if raw is None:
            return self.default_severity
        try:
            return Severity.parse(raw)
        except ValueError as e:
            raise MalformedOutputError(f"{self.spec.name}: unknown severity {raw!r}") from e

    def record_message(self, record: dict) -> str:
        for field_name in self.message_fields:
            value = record.get(field_name)
            if value:
                return str(value)
        return json.dumps(record, sort_keys=True, separators=(",", ":"))
