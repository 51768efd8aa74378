# src/healthmesh/core/parser_registry.py
"""Parser lookup by name and output format."""

import logging
from typing import Optional

from ..tools.base import OutputParser
from ..tools.json_output import JsonOutputParser
from ..tools.k8s_netinspect import K8sNetinspectParser
from ..tools.netrain import NetrainParser
from ..tools.secretscan import SecretscanParser
from ..tools.text_output import TextOutputParser
from .exceptions import ConfigurationError
from .types import OutputFormat, ToolSpec

logger = logging.getLogger(__name__)

# Generic parsers, one per output format
FORMAT_PARSERS: dict[OutputFormat, type[OutputParser]] = {
    OutputFormat.JSON: JsonOutputParser,
    OutputFormat.TEXT: TextOutputParser,
}

# Tool-specific parsers, selectable with the `parser` key of a tool entry
PARSER_REGISTRY: dict[str, type[OutputParser]] = {
    "json": JsonOutputParser,
    "text": TextOutputParser,
    "secretscan": SecretscanParser,
    "k8s-netinspect": K8sNetinspectParser,
    "netrain": NetrainParser,
}


def register_parser(name: str, parser_class: type[OutputParser]) -> None:
    """Register an additional parser class under `name`."""
    PARSER_REGISTRY[name] = parser_class
    logger.info(f"Registered parser: {name}")


def parser_class_for(spec: ToolSpec) -> type[OutputParser]:
    """Pick the parser class for a tool: its explicit `parser` or its format's."""
    if spec.parser:
        parser_class: Optional[type[OutputParser]] = PARSER_REGISTRY.get(spec.parser)
        if parser_class is None:
            available = ", ".join(sorted(PARSER_REGISTRY))
            raise ConfigurationError(
                f"Tool '{spec.name}' uses unknown parser '{spec.parser}' (available: {available})"
            )
        return parser_class
    return FORMAT_PARSERS[spec.output_format]


def build_parser(spec: ToolSpec) -> OutputParser:
    return parser_class_for(spec)(spec)


def available_parsers() -> list[str]:
    return sorted(PARSER_REGISTRY)
