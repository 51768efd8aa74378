# src/healthmesh/tools/text_output.py
import logging
from typing import Optional

from ..core.types import Finding, InvocationResult, OutputFormat, Severity
from .base import OutputParser

logger = logging.getLogger(__name__)


class TextOutputParser(OutputParser):
    """Line-oriented parser matching marker substrings, case-insensitively."""

    name = "text"
    output_format = OutputFormat.TEXT
    default_markers: tuple[tuple[str, Severity], ...] = (("detected", Severity.WARNING),)

    @property
    def markers(self) -> tuple[tuple[str, Severity], ...]:
        return self.spec.markers or self.default_markers

    def parse(self, result: InvocationResult) -> list[Finding]:
        markers = [(substring.lower(), severity) for substring, severity in self.markers]
        findings = []
        for line in result.stdout.splitlines():
            line = line.strip()
            if not line:
                continue
            severity = self.match_line(line.lower(), markers)
            if severity is not None:
                findings.append(self.make_finding(result, severity, line))

        logger.debug(f"Matched {len(findings)} marker line(s) in '{result.tool}' output")
        return findings

    @staticmethod
    def match_line(
        line: str, markers: list[tuple[str, Severity]]
    ) -> Optional[Severity]:
        # highest severity wins when several markers match
        matched = [severity for substring, severity in markers if substring in line]
        if not matched:
            return None
        return max(matched, key=lambda s: s.rank)
