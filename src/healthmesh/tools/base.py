import asyncio
import logging
import os
import shutil
import signal
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from ..core.exceptions import LaunchError
from ..core.types import Finding, InvocationResult, OutputFormat, Severity, ToolSpec

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_CAP = 64 * 1024
_READ_CHUNK_SIZE = 4096
_EXIT_POLL_INTERVAL = 0.05
OUTPUT_DRAIN_GRACE = 0.5


def build_argv(spec: ToolSpec) -> list[str]:
    """Build the argument vector for a tool. No shell is involved."""
    return [spec.command, *spec.args]


def resolve_executable(spec: ToolSpec) -> str:
    """Resolve the tool's command to an executable path or raise LaunchError."""
    command = spec.command
    if os.sep in command or (os.altsep and os.altsep in command):
        if not os.path.isfile(command):
            raise LaunchError(spec.name, f"executable not found: {command}")
        if not os.access(command, os.X_OK):
            raise LaunchError(spec.name, f"file is not executable: {command}")
        return command

    resolved = shutil.which(command)
    if not resolved:
        raise LaunchError(
            spec.name,
            f"command '{command}' not found in PATH. Ensure it is installed "
            f"or configure an absolute path.",
        )
    return resolved


class _CappedBuffer:
    """Keeps the first `cap` bytes of a stream and counts the rest."""

    def __init__(self, cap: int):
        self.cap = cap
        self.data = bytearray()
        self.dropped = 0

    def feed(self, chunk: bytes) -> None:
        room = self.cap - len(self.data)
        if room > 0:
            self.data.extend(chunk[:room])
        self.dropped += max(0, len(chunk) - max(room, 0))

    def text(self) -> str:
        text = self.data.decode("utf-8", errors="replace")
        if self.dropped:
            text += f"\n[truncated {self.dropped} bytes]"
        return text


async def _drain(stream: asyncio.StreamReader, buffer: _CappedBuffer) -> None:
    while True:
        chunk = await stream.read(_READ_CHUNK_SIZE)
        if not chunk:
            break
        buffer.feed(chunk)


def _kill(process: asyncio.subprocess.Process) -> None:
    """SIGKILL the tool's whole session, including helpers it left behind."""
    try:
        if hasattr(os, "killpg"):
            os.killpg(process.pid, signal.SIGKILL)
        elif process.returncode is None:
            process.kill()
    except (ProcessLookupError, PermissionError):
        pass


async def _wait_for_exit(process: asyncio.subprocess.Process) -> int:
    # Process.wait() can block until the pipes close, which a background
    # helper holding them open delays indefinitely.
    while process.returncode is None:
        await asyncio.sleep(_EXIT_POLL_INTERVAL)
    return process.returncode


async def invoke_tool(
    spec: ToolSpec, output_cap: int = DEFAULT_OUTPUT_CAP
) -> InvocationResult:
    """
    Run one invocation of a tool.

    Starts exactly one child process, enforces `spec.timeout` and captures up
    to `output_cap` bytes of stdout and of stderr. The child is killed and
    reaped on every exit path, including cancellation of the calling task.

    Raises:
        LaunchError: the binary is missing or cannot be executed.
    """
    argv = build_argv(spec)
    argv[0] = resolve_executable(spec)
    logger.debug(f"Executing command for '{spec.name}': {' '.join(argv)}")

    timestamp = datetime.now(timezone.utc)
    started = time.monotonic()
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as e:
        raise LaunchError(spec.name, f"could not start '{argv[0]}': {e}") from e

    stdout_buffer = _CappedBuffer(output_cap)
    stderr_buffer = _CappedBuffer(output_cap)
    drains = [
        asyncio.ensure_future(_drain(process.stdout, stdout_buffer)),
        asyncio.ensure_future(_drain(process.stderr, stderr_buffer)),
    ]
    timed_out = False
    try:
        try:
            await asyncio.wait_for(_wait_for_exit(process), timeout=spec.timeout)
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning(f"Tool '{spec.name}' timed out after {spec.timeout}s, killing pid {process.pid}")
        _kill(process)
        await _wait_for_exit(process)

        _, lingering = await asyncio.wait(drains, timeout=OUTPUT_DRAIN_GRACE)
        if lingering:
            logger.warning(f"Output pipes of '{spec.name}' still open {OUTPUT_DRAIN_GRACE}s after exit")
    finally:
        _kill(process)
        if process.returncode is None:
            await _wait_for_exit(process)
        for task in drains:
            task.cancel()
        await asyncio.gather(*drains, return_exceptions=True)

    duration = time.monotonic() - started
    truncated = bool(stdout_buffer.dropped or stderr_buffer.dropped)
    if truncated:
        logger.info(f"Output of '{spec.name}' exceeded {output_cap} bytes and was truncated")
    logger.debug(
        f"Tool '{spec.name}' finished in {duration:.2f}s with exit code {process.returncode}"
    )
    return InvocationResult(
        tool=spec.name,
        timestamp=timestamp,
        exit_code=process.returncode,
        stdout=stdout_buffer.text(),
        stderr=stderr_buffer.text(),
        duration=duration,
        timed_out=timed_out,
        truncated=truncated,
    )


class OutputParser(ABC):
    """Turns the stdout of one invocation into normalized findings."""

    name: str = "unnamed"
    output_format: OutputFormat = OutputFormat.TEXT
    default_severity: Severity = Severity.WARNING

    def __init__(self, spec: ToolSpec):
        self.spec = spec

    @abstractmethod
    def parse(self, result: InvocationResult) -> list[Finding]:
        """
        Raises:
            MalformedOutputError: the output does not have the expected shape.
        """
        pass

    def make_finding(
        self, result: InvocationResult, severity: Severity, message: str
    ) -> Finding:
        return Finding(
            tool=result.tool,
            severity=severity,
            message=message,
            timestamp=result.timestamp,
        )
