# src/healthmesh/core/health.py
"""Per-tool health state machine."""

import asyncio
import dataclasses
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from .alerts import AlertSink
from .exceptions import ConfigurationError
from .types import CycleOutcome, Finding, HealthState, Severity, ToolHealth

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 3
DEFAULT_ALERT_SAMPLE_SIZE = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_state(
    health: ToolHealth,
    outcome: CycleOutcome,
    findings: Sequence[Finding],
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
) -> tuple[HealthState, int]:
    """
    Compute (state, consecutive_failure_count) after one cycle.

    Failed invocations only count until the threshold is reached; any
    invocation that exits with an accepted code resets the count.
    """
    if outcome.is_failure:
        failures = health.consecutive_failure_count + 1
        if failures >= failure_threshold:
            return HealthState.FAILING, failures
        return health.state, failures

    if outcome == CycleOutcome.MALFORMED_OUTPUT:
        return HealthState.UNKNOWN, 0

    if any(f.severity.rank >= Severity.WARNING.rank for f in findings):
        return HealthState.DEGRADED, 0
    return HealthState.HEALTHY, 0


class HealthTracker:
    """
    Owns the health table: exactly one ToolHealth per registered tool.

    Updates for one tool are serialized by a per-tool lock. The alert sink is
    notified only when a tool's state actually changes.
    """

    def __init__(
        self,
        alert_sink: Optional[AlertSink] = None,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        sample_size: int = DEFAULT_ALERT_SAMPLE_SIZE,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if failure_threshold < 1:
            raise ValueError(f"failure_threshold must be at least 1, got {failure_threshold}")
        self.alert_sink = alert_sink
        self.failure_threshold = failure_threshold
        self.sample_size = sample_size
        self._clock = clock
        self._health: dict[str, ToolHealth] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def register(self, tool: str) -> ToolHealth:
        if tool in self._health:
            raise ConfigurationError(f"Tool '{tool}' is already registered")
        self._health[tool] = ToolHealth(tool=tool)
        self._locks[tool] = asyncio.Lock()
        logger.debug(f"Registered health entry for '{tool}'")
        return self.get(tool)

    def __contains__(self, tool: str) -> bool:
        return tool in self._health

    def get(self, tool: str) -> ToolHealth:
        """Copy of the tool's current health. Raises KeyError for unknown tools."""
        return self._copy(self._health[tool])

    def snapshot(self) -> dict[str, ToolHealth]:
        return {tool: self._copy(health) for tool, health in self._health.items()}

    @staticmethod
    def _copy(health: ToolHealth) -> ToolHealth:
        return dataclasses.replace(health, last_findings=list(health.last_findings))

    async def record(
        self,
        tool: str,
        outcome: CycleOutcome,
        findings: Sequence[Finding] = (),
    ) -> ToolHealth:
        """Apply the result of one cycle and return the updated health."""
        lock = self._locks[tool]
        async with lock:
            health = self._health[tool]
            old_state = health.state
            new_state, failures = next_state(
                health, outcome, findings, self.failure_threshold
            )

            now = self._clock()
            health.consecutive_failure_count = failures
            health.cycles += 1
            health.last_cycle_time = now
            health.last_outcome = outcome
            health.last_findings = list(findings)

            if new_state != old_state:
                health.state = new_state
                health.last_transition_time = now
                logger.info(
                    f"'{tool}' {old_state.value} -> {new_state.value} "
                    f"after {outcome.value} (failures={failures})"
                )
                await self._notify(tool, old_state, new_state, findings)
            else:
                logger.debug(
                    f"'{tool}' stays {old_state.value} after {outcome.value} (failures={failures})"
                )
            return self._copy(health)

    def sample(self, findings: Sequence[Finding]) -> list[Finding]:
        ordered = sorted(findings, key=lambda f: f.severity.rank, reverse=True)
        return ordered[: self.sample_size]

    async def _notify(
        self,
        tool: str,
        old_state: HealthState,
        new_state: HealthState,
        findings: Sequence[Finding],
    ) -> None:
        if self.alert_sink is None:
            return
        try:
            # sinks may block on network delivery
            await asyncio.to_thread(
                self.alert_sink.notify, tool, old_state, new_state, self.sample(findings)
            )
        except Exception as e:
            logger.error(f"Alert sink failed for '{tool}': {e}", exc_info=True)
