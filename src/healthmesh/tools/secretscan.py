# src/healthmesh/tools/secretscan.py
"""Parser for secretscan's JSON report."""

import logging

from ..core.exceptions import MalformedOutputError
from ..core.types import Severity
from .json_output import JsonOutputParser

logger = logging.getLogger(__name__)


class SecretscanParser(JsonOutputParser):
    """
    secretscan --format json prints {"findings": [{rule, file, line, severity}, ...]}.

    A reported secret without a severity is treated as an error: leaked
    credentials are never merely informational.
    """

    name = "secretscan"
    default_severity = Severity.ERROR

    @property
    def records_key(self) -> str:
        return "findings"

    def record_message(self, record: dict) -> str:
        rule = record.get("rule")
        if not rule:
            raise MalformedOutputError(f"{self.spec.name}: finding without a 'rule' field")

        location = record.get("file") or "<unknown file>"
        if record.get("line") is not None:
            location = f"{location}:{record['line']}"
        return f"{rule} detected in {location}"
