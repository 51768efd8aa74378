# src/healthmesh/core/input_validator.py
"""Validation and normalization of tool configuration values."""

import re
import shlex
import unicodedata
from typing import Any, Union
from urllib.parse import urlparse

from .exceptions import ValidationError
from .types import OutputFormat, Severity

MAX_ARGUMENT_LENGTH = 1000


class InputValidator:
    """Validates and normalizes values read from the tool configuration."""

    TOOL_NAME_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._-]{0,63}$')
    ALLOWED_CONTROL_CHARS = frozenset('\t\n\r')

    @classmethod
    def validate_tool_name(cls, name: Any) -> str:
        """Validate a tool name (used as the health table key)."""
        if not name or not isinstance(name, str):
            raise ValidationError("Tool name cannot be empty")

        name = name.strip()
        if not cls.TOOL_NAME_PATTERN.match(name):
            raise ValidationError(f"Invalid tool name: {name!r}")
        return name

    @classmethod
    def validate_command(cls, command: Any) -> str:
        """Validate the executable name or path of a tool."""
        if not command or not isinstance(command, str) or not command.strip():
            raise ValidationError("Command cannot be empty")

        command = command.strip()
        cls._check_argument(command)
        return command

    @classmethod
    def validate_args(cls, args: Union[str, list, tuple, None]) -> tuple[str, ...]:
        """Validate tool arguments, given either as a list or a shell-style string."""
        if args is None:
            return ()

        if isinstance(args, str):
            try:
                args = shlex.split(args)
            except ValueError as e:
                raise ValidationError(f"Invalid command arguments: {e}")

        if not isinstance(args, (list, tuple)):
            raise ValidationError(f"Arguments must be a list, got {type(args).__name__}")

        validated = []
        for arg in args:
            if isinstance(arg, bool) or not isinstance(arg, (str, int, float)):
                raise ValidationError(f"Unsupported argument value: {arg!r}")
            arg = str(arg)
            cls._check_argument(arg)
            validated.append(arg)
        return tuple(validated)

    @classmethod
    def _check_argument(cls, arg: str) -> None:
        if len(arg) > MAX_ARGUMENT_LENGTH:
            raise ValidationError(f"Argument too long: {len(arg)} characters")

        if '\x00' in arg:
            raise ValidationError("Null byte detected in argument")

        if any(
            unicodedata.category(c) == 'Cc' and c not in cls.ALLOWED_CONTROL_CHARS
            for c in arg
        ):
            raise ValidationError("Invalid characters detected in argument")

    @classmethod
    def validate_seconds(cls, value: Any, field_name: str) -> float:
        """Validate a positive duration in seconds."""
        if isinstance(value, bool):
            raise ValidationError(f"{field_name} must be a number, got {value!r}")
        try:
            seconds = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{field_name} must be a number, got {value!r}")

        if seconds <= 0:
            raise ValidationError(f"{field_name} must be greater than 0, got {seconds}")
        return seconds

    @classmethod
    def validate_positive_int(cls, value: Any, field_name: str) -> int:
        if isinstance(value, bool):
            raise ValidationError(f"{field_name} must be an integer, got {value!r}")
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{field_name} must be an integer, got {value!r}")

        if number < 1:
            raise ValidationError(f"{field_name} must be at least 1, got {number}")
        return number

    @classmethod
    def validate_output_format(cls, value: Any) -> OutputFormat:
        try:
            return OutputFormat(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(f.value for f in OutputFormat)
            raise ValidationError(f"Unknown output format {value!r} (expected one of: {allowed})")

    @classmethod
    def validate_severity(cls, value: Any) -> Severity:
        try:
            return Severity.parse(value)
        except ValueError:
            raise ValidationError(f"Unknown severity: {value!r}")

    @classmethod
    def validate_success_codes(cls, codes: Any) -> tuple[int, ...]:
        if codes is None:
            return (0,)
        if isinstance(codes, int) and not isinstance(codes, bool):
            codes = [codes]
        if not isinstance(codes, (list, tuple)) or not codes:
            raise ValidationError("success_codes must be a non-empty list of integers")

        validated = []
        for code in codes:
            if isinstance(code, bool) or not isinstance(code, int):
                raise ValidationError(f"Invalid exit code: {code!r}")
            if not 0 <= code <= 255:
                raise ValidationError(f"Exit code must be between 0 and 255, got {code}")
            validated.append(code)
        return tuple(validated)

    @classmethod
    def validate_markers(cls, markers: Any) -> tuple[tuple[str, Severity], ...]:
        """Validate a mapping of marker substring -> severity."""
        if markers is None:
            return ()
        if not isinstance(markers, dict):
            raise ValidationError("markers must be a mapping of substring to severity")

        validated = []
        for substring, severity in markers.items():
            if not isinstance(substring, str) or not substring.strip():
                raise ValidationError(f"Invalid marker: {substring!r}")
            validated.append((substring.strip(), cls.validate_severity(severity)))
        return tuple(validated)

    @classmethod
    def validate_url(cls, url: Any) -> str:
        """Validate a webhook URL."""
        if not url:
            raise ValidationError("URL cannot be empty")
        if not isinstance(url, str):
            raise ValidationError(f"URL must be a string, got {url!r}")

        parsed = urlparse(url)
        if parsed.scheme not in ('http', 'https'):
            raise ValidationError(f"Unsupported URL scheme: {parsed.scheme!r}")
        if not parsed.netloc:
            raise ValidationError("URL must include a host")
        return parsed.geturl()
