"""
Shared types for healthmesh tool invocations and health tracking.

ToolSpec: immutable description of one registered external tool.
InvocationResult: what a single run of a tool produced.
Finding: one normalized issue extracted from a tool's output.
ToolHealth: the tracker's current assessment of one tool.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class OutputFormat(str, Enum):
    JSON = "json"
    TEXT = "text"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value: str) -> "Severity":
        """Map a tool-reported severity string onto a Severity."""
        normalized = str(value).strip().lower()
        normalized = _SEVERITY_ALIASES.get(normalized, normalized)
        return cls(normalized)


_SEVERITY_RANK = {
    Severity.INFO: 0,
    Severity.WARNING: 1,
    Severity.ERROR: 2,
    Severity.CRITICAL: 3,
}

_SEVERITY_ALIASES = {
    "informational": "info",
    "low": "info",
    "warn": "warning",
    "medium": "warning",
    "high": "error",
    "fatal": "critical",
}


class HealthState(str, Enum):
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILING = "failing"


class CycleOutcome(str, Enum):
    SUCCESS = "success"
    TIMED_OUT = "timed_out"
    LAUNCH_ERROR = "launch_error"
    EXIT_ERROR = "exit_error"
    MALFORMED_OUTPUT = "malformed_output"

    @property
    def is_failure(self) -> bool:
        return self in (
            CycleOutcome.TIMED_OUT,
            CycleOutcome.LAUNCH_ERROR,
            CycleOutcome.EXIT_ERROR,
        )


@dataclass(frozen=True)
class ToolSpec:
    name: str
    command: str
    args: tuple[str, ...] = ()
    interval: float = 60.0
    timeout: float = 30.0
    output_format: OutputFormat = OutputFormat.TEXT
    parser: Optional[str] = None
    success_codes: tuple[int, ...] = (0,)
    # (substring, severity) pairs used by line-oriented parsers
    markers: tuple[tuple[str, Severity], ...] = ()
    records_key: str = "findings"


@dataclass(frozen=True)
class InvocationResult:
    tool: str
    timestamp: datetime
    exit_code: Optional[int]
    stdout: str
    stderr: str
    duration: float
    timed_out: bool = False
    truncated: bool = False


@dataclass(frozen=True)
class Finding:
    tool: str
    severity: Severity
    message: str
    timestamp: datetime


@dataclass
class ToolHealth:
    tool: str
    state: HealthState = HealthState.UNKNOWN
    consecutive_failure_count: int = 0
    last_transition_time: Optional[datetime] = None
    last_cycle_time: Optional[datetime] = None
    cycles: int = 0
    last_outcome: Optional[CycleOutcome] = None
    last_findings: list[Finding] = field(default_factory=list)
