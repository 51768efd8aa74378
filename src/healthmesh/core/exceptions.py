# src/healthmesh/core/exceptions.py
"""Custom exception hierarchy for healthmesh."""


class HealthMeshError(Exception):
    """Base exception for all healthmesh errors."""
    pass


class LaunchError(HealthMeshError):
    """Raised when a tool binary is missing or cannot be executed."""

    def __init__(self, tool: str, message: str):
        super().__init__(f"{tool}: {message}")
        self.tool = tool


class MalformedOutputError(HealthMeshError):
    """Raised when a tool's output does not have the expected shape."""
    pass


class ConfigurationError(HealthMeshError):
    """Raised when there's a configuration issue."""
    pass


class ValidationError(HealthMeshError):
    """Raised when a configuration value fails validation."""
    pass
