"""
Bounded per-tool history of invocation results, kept for diagnostics.
"""

import logging
from collections import deque
from typing import Optional

from .types import InvocationResult

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 20


class ResultHistory:
    """Ring buffer of the most recent InvocationResults of each tool."""

    def __init__(self, size: int = DEFAULT_HISTORY_SIZE):
        """
        Args:
            size: Number of results retained per tool; older ones are discarded
        """
        if size < 1:
            raise ValueError(f"history size must be at least 1, got {size}")
        self.size = size
        self._results: dict[str, deque[InvocationResult]] = {}

    def append(self, result: InvocationResult) -> None:
        buffer = self._results.get(result.tool)
        if buffer is None:
            buffer = self._results[result.tool] = deque(maxlen=self.size)
        buffer.append(result)

    def recent(self, tool: str, limit: Optional[int] = None) -> list[InvocationResult]:
        """Results for `tool`, oldest first."""
        results = list(self._results.get(tool, ()))
        if limit is not None:
            results = results[-limit:] if limit > 0 else []
        return results

    def latest(self, tool: str) -> Optional[InvocationResult]:
        buffer = self._results.get(tool)
        return buffer[-1] if buffer else None

    def clear(self, tool: Optional[str] = None) -> None:
        if tool is None:
            self._results.clear()
        else:
            self._results.pop(tool, None)
        logger.debug(f"Cleared result history for {tool or 'all tools'}")
