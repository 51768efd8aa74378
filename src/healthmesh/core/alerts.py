# src/healthmesh/core/alerts.py
"""Alert sinks receiving health state transitions."""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import requests
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from .types import Finding, HealthState

logger = logging.getLogger(__name__)

STATE_STYLES = {
    HealthState.UNKNOWN: "yellow",
    HealthState.HEALTHY: "green",
    HealthState.DEGRADED: "orange_red1",
    HealthState.FAILING: "red",
}


class AlertSink(ABC):
    """Receives a notification whenever a tool's health state changes."""

    @abstractmethod
    def notify(
        self,
        tool_name: str,
        old_state: HealthState,
        new_state: HealthState,
        sample_findings: Sequence[Finding],
    ) -> None:
        pass


class LoggingAlertSink(AlertSink):
    """Writes each transition as a log line."""

    def __init__(self, alert_logger: Optional[logging.Logger] = None):
        self.logger = alert_logger or logger

    def notify(self, tool_name, old_state, new_state, sample_findings):
        level = logging.INFO if new_state == HealthState.HEALTHY else logging.WARNING
        message = f"Health of '{tool_name}' changed: {old_state.value} -> {new_state.value}"
        if sample_findings:
            sample = "; ".join(
                f"[{f.severity.value}] {f.message}" for f in sample_findings
            )
            message += f" ({sample})"
        self.logger.log(level, message)


class ConsoleAlertSink(AlertSink):
    """Prints each transition as a rich panel."""

    def __init__(self, console: Console):
        self.console = console

    def notify(self, tool_name, old_state, new_state, sample_findings):
        style = STATE_STYLES.get(new_state, "white")
        lines = [
            f"[{STATE_STYLES.get(old_state, 'white')}]{old_state.value}[/] -> "
            f"[bold {style}]{new_state.value}[/]"
        ]
        for finding in sample_findings:
            lines.append(f"  [dim]{finding.severity.value}[/dim] {escape(finding.message)}")
        self.console.print(
            Panel("\n".join(lines), title=f"{tool_name} health", border_style=style)
        )


class WebhookAlertSink(AlertSink):
    """POSTs each transition as JSON to a webhook URL."""

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    def build_payload(self, tool_name, old_state, new_state, sample_findings) -> dict:
        return {
            "tool": tool_name,
            "old_state": old_state.value,
            "new_state": new_state.value,
            "findings": [
                {
                    "severity": f.severity.value,
                    "message": f.message,
                    "timestamp": f.timestamp.isoformat(),
                }
                for f in sample_findings
            ],
        }

    def notify(self, tool_name, old_state, new_state, sample_findings):
        payload = self.build_payload(tool_name, old_state, new_state, sample_findings)
        try:
            response = requests.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            logger.debug(f"Delivered '{tool_name}' alert to webhook (status {response.status_code})")
        except requests.exceptions.Timeout as e:
            logger.error(f"Timeout delivering '{tool_name}' alert to {self.url}: {e}")
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to deliver '{tool_name}' alert to {self.url}: {e}")


class FanoutAlertSink(AlertSink):
    """Forwards each transition to several sinks; one failing sink does not stop the rest."""

    def __init__(self, sinks: Sequence[AlertSink]):
        self.sinks = list(sinks)

    def notify(self, tool_name, old_state, new_state, sample_findings):
        for sink in self.sinks:
            try:
                sink.notify(tool_name, old_state, new_state, sample_findings)
            except Exception as e:
                logger.error(
                    f"Alert sink {sink.__class__.__name__} failed for '{tool_name}': {e}",
                    exc_info=True,
                )
