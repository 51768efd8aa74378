import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml
from dotenv import load_dotenv
from rich.console import Console

from ..tools.base import DEFAULT_OUTPUT_CAP
from .alerts import AlertSink, ConsoleAlertSink, FanoutAlertSink, LoggingAlertSink, WebhookAlertSink
from .exceptions import ConfigurationError, ValidationError
from .health import DEFAULT_FAILURE_THRESHOLD
from .history import DEFAULT_HISTORY_SIZE
from .input_validator import InputValidator
from .parser_registry import parser_class_for
from .scheduler import DEFAULT_DRAIN_GRACE
from .types import OutputFormat, ToolSpec

logger = logging.getLogger(__name__)

console = Console()
load_dotenv()

DEFAULT_CONFIG_FILE = "healthmesh.yaml"
DEFAULT_INTERVAL = 60.0
DEFAULT_TIMEOUT = 30.0

TOOL_KEYS = {
    "name",
    "command",
    "args",
    "interval",
    "timeout",
    "format",
    "parser",
    "success_codes",
    "markers",
    "records_key",
}
TOP_LEVEL_KEYS = {
    "tools",
    "failure_threshold",
    "output_cap",
    "history_size",
    "drain_grace",
    "alerts",
}


@dataclass
class AlertSettings:
    console: bool = True
    webhook_url: Optional[str] = None
    webhook_timeout: float = 10.0


@dataclass
class MeshSettings:
    tools: list[ToolSpec] = field(default_factory=list)
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    output_cap: int = DEFAULT_OUTPUT_CAP
    history_size: int = DEFAULT_HISTORY_SIZE
    drain_grace: float = DEFAULT_DRAIN_GRACE
    alerts: AlertSettings = field(default_factory=AlertSettings)


def default_config_path() -> Path:
    return Path(os.getenv("HEALTHMESH_CONFIG", DEFAULT_CONFIG_FILE))


def load_settings(path: Union[str, Path, None] = None) -> MeshSettings:
    """Load and validate the YAML configuration file."""
    config_path = Path(path) if path else default_config_path()
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")
    except OSError as e:
        raise ConfigurationError(f"Could not read {config_path}: {e}")

    settings = parse_settings(data or {})
    logger.info(f"Loaded {len(settings.tools)} tool(s) from {config_path}")
    return settings


def parse_settings(
    data: Mapping[str, Any], environ: Optional[Mapping[str, str]] = None
) -> MeshSettings:
    """Build MeshSettings from parsed YAML, applying HEALTHMESH_* environment overrides."""
    if environ is None:
        environ = os.environ
    if not isinstance(data, Mapping):
        raise ConfigurationError("Configuration must be a mapping at the top level")

    unknown = set(data) - TOP_LEVEL_KEYS
    if unknown:
        raise ConfigurationError(f"Unknown configuration key(s): {', '.join(sorted(unknown))}")

    try:
        failure_threshold = InputValidator.validate_positive_int(
            environ.get("HEALTHMESH_FAILURE_THRESHOLD")
            or data.get("failure_threshold", DEFAULT_FAILURE_THRESHOLD),
            "failure_threshold",
        )
        output_cap = InputValidator.validate_positive_int(
            environ.get("HEALTHMESH_OUTPUT_CAP") or data.get("output_cap", DEFAULT_OUTPUT_CAP),
            "output_cap",
        )
        history_size = InputValidator.validate_positive_int(
            data.get("history_size", DEFAULT_HISTORY_SIZE), "history_size"
        )
        drain_grace = InputValidator.validate_seconds(
            data.get("drain_grace", DEFAULT_DRAIN_GRACE), "drain_grace"
        )
        alerts = parse_alert_settings(data.get("alerts") or {}, environ)
    except ValidationError as e:
        raise ConfigurationError(str(e))

    tool_entries = data.get("tools") or []
    if not isinstance(tool_entries, list):
        raise ConfigurationError("'tools' must be a list of tool entries")

    tools = []
    seen = set()
    for index, entry in enumerate(tool_entries):
        spec = parse_tool_spec(entry, index)
        if spec.name in seen:
            raise ConfigurationError(f"Duplicate tool name: '{spec.name}'")
        seen.add(spec.name)
        tools.append(spec)

    return MeshSettings(
        tools=tools,
        failure_threshold=failure_threshold,
        output_cap=output_cap,
        history_size=history_size,
        drain_grace=drain_grace,
        alerts=alerts,
    )


def parse_alert_settings(data: Any, environ: Mapping[str, str]) -> AlertSettings:
    if not isinstance(data, Mapping):
        raise ValidationError("'alerts' must be a mapping")

    webhook_url = environ.get("HEALTHMESH_WEBHOOK_URL") or data.get("webhook_url")
    if webhook_url:
        webhook_url = InputValidator.validate_url(webhook_url)

    return AlertSettings(
        console=bool(data.get("console", True)),
        webhook_url=webhook_url,
        webhook_timeout=InputValidator.validate_seconds(
            data.get("webhook_timeout", 10.0), "webhook_timeout"
        ),
    )


def parse_tool_spec(entry: Any, index: int = 0) -> ToolSpec:
    """Validate one entry of the `tools` list and build its ToolSpec."""
    if not isinstance(entry, Mapping):
        raise ConfigurationError(f"Tool entry #{index} must be a mapping")

    label = entry.get("name") or f"#{index}"
    unknown = set(entry) - TOOL_KEYS
    if unknown:
        raise ConfigurationError(
            f"Tool '{label}': unknown key(s): {', '.join(sorted(unknown))}"
        )

    try:
        name = InputValidator.validate_tool_name(entry.get("name"))
        parser = entry.get("parser")
        if parser is not None:
            parser = str(parser)

        spec = ToolSpec(
            name=name,
            command=InputValidator.validate_command(entry.get("command")),
            args=InputValidator.validate_args(entry.get("args")),
            interval=InputValidator.validate_seconds(
                entry.get("interval", DEFAULT_INTERVAL), "interval"
            ),
            timeout=InputValidator.validate_seconds(
                entry.get("timeout", DEFAULT_TIMEOUT), "timeout"
            ),
            output_format=InputValidator.validate_output_format(entry.get("format", "text")),
            parser=parser,
            success_codes=InputValidator.validate_success_codes(entry.get("success_codes")),
            markers=InputValidator.validate_markers(entry.get("markers")),
            records_key=str(entry.get("records_key", "findings")),
        )
    except ValidationError as e:
        raise ConfigurationError(f"Tool '{label}': {e}")

    # infer the format from an explicit parser when none was given
    parser_class = parser_class_for(spec)
    if "format" not in entry and parser_class.output_format != spec.output_format:
        spec = dataclasses.replace(spec, output_format=parser_class.output_format)
    elif parser_class.output_format != spec.output_format:
        raise ConfigurationError(
            f"Tool '{spec.name}': parser '{spec.parser}' reads "
            f"{parser_class.output_format.value} output, but format is {spec.output_format.value}"
        )

    if spec.markers and spec.output_format != OutputFormat.TEXT:
        raise ConfigurationError(f"Tool '{spec.name}': markers only apply to text output")

    if spec.timeout > spec.interval:
        logger.warning(
            f"Tool '{spec.name}' has a timeout ({spec.timeout}s) longer than its interval "
            f"({spec.interval}s); overlapping ticks will be skipped"
        )
    return spec


def build_alert_sink(alerts: AlertSettings, output_console: Optional[Console] = None) -> AlertSink:
    """Logging is always on; the console panel and the webhook are optional."""
    sinks: list[AlertSink] = [LoggingAlertSink()]
    if alerts.console:
        sinks.append(ConsoleAlertSink(output_console or console))
    if alerts.webhook_url:
        sinks.append(WebhookAlertSink(alerts.webhook_url, timeout=alerts.webhook_timeout))
    return FanoutAlertSink(sinks)
