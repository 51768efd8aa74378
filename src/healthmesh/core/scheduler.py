"""
Scheduler driving periodic health cycles for every registered tool.

Each tool has its own ticker and driver task. Tools run concurrently, but a
tool never has more than one cycle in flight: a tick that arrives while the
previous cycle is still running is skipped, not queued.
"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ..tools.base import DEFAULT_OUTPUT_CAP, OutputParser, invoke_tool
from .exceptions import ConfigurationError, LaunchError, MalformedOutputError
from .health import HealthTracker
from .history import ResultHistory
from .parser_registry import build_parser
from .ticker import IntervalTicker, Ticker
from .types import CycleOutcome, Finding, InvocationResult, ToolHealth, ToolSpec

logger = logging.getLogger(__name__)

Invoker = Callable[[ToolSpec, int], Awaitable[InvocationResult]]
TickerFactory = Callable[[ToolSpec], Ticker]

DEFAULT_DRAIN_GRACE = 1.0


def interval_ticker(spec: ToolSpec) -> Ticker:
    return IntervalTicker(spec.interval)


@dataclass
class ToolStats:
    cycles_started: int = 0
    cycles_completed: int = 0
    skipped_ticks: int = 0
    cancelled: int = 0


class Scheduler:
    """Owns the registered tools and the lifecycle of all their invocations."""

    def __init__(
        self,
        tracker: HealthTracker,
        ticker_factory: TickerFactory = interval_ticker,
        invoker: Invoker = invoke_tool,
        history: Optional[ResultHistory] = None,
        output_cap: int = DEFAULT_OUTPUT_CAP,
        drain_timeout: Optional[float] = None,
        drain_grace: float = DEFAULT_DRAIN_GRACE,
    ):
        """
        Args:
            tracker: Health table updated at the end of every cycle
            ticker_factory: Builds the ticker driving each tool's cycles
            invoker: Coroutine running one invocation of a tool
            history: Ring buffer receiving every InvocationResult
            output_cap: Per-stream capture limit passed to the invoker
            drain_timeout: Seconds to wait for in-flight cycles on shutdown;
                defaults to the longest tool timeout plus `drain_grace`
        """
        self.tracker = tracker
        self.history = history or ResultHistory()
        self.output_cap = output_cap
        self._ticker_factory = ticker_factory
        self._invoker = invoker
        self._drain_timeout = drain_timeout
        self._drain_grace = drain_grace
        self._specs: dict[str, ToolSpec] = {}
        self._parsers: dict[str, OutputParser] = {}
        self._stats: dict[str, ToolStats] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._stop_event = asyncio.Event()
        self._running = False

    def register(self, spec: ToolSpec, parser: Optional[OutputParser] = None) -> None:
        """Register a tool. Its spec cannot change afterwards."""
        if self._running:
            raise ConfigurationError("Tools cannot be registered while the scheduler is running")
        if spec.name in self._specs:
            raise ConfigurationError(f"Tool '{spec.name}' is already registered")

        parser = parser or build_parser(spec)
        self.tracker.register(spec.name)
        self._specs[spec.name] = spec
        self._parsers[spec.name] = parser
        self._stats[spec.name] = ToolStats()
        logger.info(
            f"Registered tool '{spec.name}' (every {spec.interval}s, "
            f"timeout {spec.timeout}s, parser {parser.name})"
        )

    @property
    def specs(self) -> list[ToolSpec]:
        return list(self._specs.values())

    @property
    def drain_timeout(self) -> float:
        if self._drain_timeout is not None:
            return self._drain_timeout
        longest = max((spec.timeout for spec in self._specs.values()), default=0.0)
        return longest + self._drain_grace

    def stats(self, name: str) -> ToolStats:
        return dataclasses.replace(self._stats[name])

    def in_flight(self, name: str) -> bool:
        task = self._inflight.get(name)
        return task is not None and not task.done()

    @property
    def running(self) -> bool:
        return self._running

    def stop(self) -> None:
        """Stop scheduling new cycles; `run()` then drains and returns."""
        if not self._stop_event.is_set():
            logger.info("Stop requested")
        self._stop_event.set()

    async def run(self) -> None:
        """Drive every registered tool until `stop()` is called. A stopped scheduler stays stopped."""
        if self._running:
            raise RuntimeError("Scheduler is already running")
        if not self._specs:
            logger.warning("No tools registered; scheduler will idle until stopped")

        self._running = True
        drivers = [
            asyncio.create_task(self._drive(spec), name=f"driver:{spec.name}")
            for spec in self._specs.values()
        ]
        logger.info(f"Scheduler started with {len(drivers)} tool(s)")
        try:
            await self._stop_event.wait()
        finally:
            self._stop_event.set()
            await self._shutdown(drivers)
            self._running = False

    async def run_cycle(self, name: str) -> Optional[ToolHealth]:
        """
        Run one cycle of `name` now and return its updated health, or None if
        a cycle of that tool is already in flight.
        """
        task = self._start_cycle(self._specs[name])
        if task is None:
            return None
        return await task

    async def run_once(self) -> dict[str, ToolHealth]:
        """Run one cycle of every tool concurrently."""
        await asyncio.gather(*(self.run_cycle(name) for name in self._specs))
        return self.tracker.snapshot()

    async def _drive(self, spec: ToolSpec) -> None:
        ticker = self._ticker_factory(spec)
        while not self._stop_event.is_set():
            await ticker.wait()
            if self._stop_event.is_set():
                break
            self._start_cycle(spec)

    def _start_cycle(self, spec: ToolSpec) -> Optional[asyncio.Task]:
        if self.in_flight(spec.name):
            self._stats[spec.name].skipped_ticks += 1
            logger.info(f"Skipping cycle for '{spec.name}': previous cycle still running")
            return None

        task = asyncio.create_task(self._cycle(spec), name=f"cycle:{spec.name}")
        self._inflight[spec.name] = task
        return task

    async def _cycle(self, spec: ToolSpec) -> ToolHealth:
        stats = self._stats[spec.name]
        stats.cycles_started += 1
        try:
            outcome, findings = await self._execute(spec)
        except asyncio.CancelledError:
            stats.cancelled += 1
            logger.warning(f"Cycle for '{spec.name}' cancelled before completion")
            raise

        health = await self.tracker.record(spec.name, outcome, findings)
        stats.cycles_completed += 1
        return health

    async def _execute(self, spec: ToolSpec) -> tuple[CycleOutcome, list[Finding]]:
        try:
            result = await self._invoker(spec, self.output_cap)
        except LaunchError as e:
            logger.error(f"Launch failed for '{spec.name}': {e}")
            return CycleOutcome.LAUNCH_ERROR, []
        except Exception as e:
            logger.error(f"Unexpected error invoking '{spec.name}': {e}", exc_info=True)
            return CycleOutcome.LAUNCH_ERROR, []

        self.history.append(result)
        if result.timed_out:
            return CycleOutcome.TIMED_OUT, []

        if result.exit_code not in spec.success_codes:
            stderr_output = result.stderr.strip()[:200] or "no stderr"
            logger.warning(
                f"'{spec.name}' exited with status {result.exit_code}: {stderr_output}"
            )
            return CycleOutcome.EXIT_ERROR, []

        try:
            findings = self._parsers[spec.name].parse(result)
        except MalformedOutputError as e:
            logger.error(f"Malformed output from '{spec.name}': {e}")
            return CycleOutcome.MALFORMED_OUTPUT, []
        except Exception as e:
            logger.error(f"Unexpected error parsing output of '{spec.name}': {e}", exc_info=True)
            return CycleOutcome.MALFORMED_OUTPUT, []
        return CycleOutcome.SUCCESS, findings

    async def _shutdown(self, drivers: list[asyncio.Task]) -> None:
        for driver in drivers:
            driver.cancel()
        await asyncio.gather(*drivers, return_exceptions=True)

        pending = [task for task in self._inflight.values() if not task.done()]
        if pending:
            timeout = self.drain_timeout
            logger.info(f"Waiting up to {timeout:.1f}s for {len(pending)} in-flight cycle(s)")
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            if still_running:
                logger.warning(f"Cancelling {len(still_running)} cycle(s) still running after drain")
                for task in still_running:
                    task.cancel()
                await asyncio.gather(*still_running, return_exceptions=True)
        logger.info("Scheduler stopped")
