# src/healthmesh/tools/netrain.py
"""Parser for netrain's line-oriented monitor output."""

from ..core.types import Severity
from .text_output import TextOutputParser


class NetrainParser(TextOutputParser):
    name = "netrain"
    default_markers = (
        ("anomaly detected", Severity.WARNING),
        ("attack detected", Severity.CRITICAL),
        ("error:", Severity.ERROR),
    )
