import pytest

from healthmesh.core.exceptions import ValidationError
from healthmesh.core.input_validator import InputValidator
from healthmesh.core.types import OutputFormat, Severity


class TestInputValidator:
    """Validation of tool configuration values."""

    def test_tool_names(self):
        assert InputValidator.validate_tool_name(" k8s-netinspect ") == "k8s-netinspect"
        assert InputValidator.validate_tool_name("file_hasher.v2") == "file_hasher.v2"
        for bad in ("", None, "-leading", "has space", "a" * 65, "semi;colon"):
            with pytest.raises(ValidationError):
                InputValidator.validate_tool_name(bad)

    def test_args_from_string_and_list(self):
        assert InputValidator.validate_args("scan --path 'a b'") == ("scan", "--path", "a b")
        assert InputValidator.validate_args(["--depth", 3]) == ("--depth", "3")
        assert InputValidator.validate_args(None) == ()

    def test_args_rejections(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_args("unterminated 'quote")
        with pytest.raises(ValidationError):
            InputValidator.validate_args(["x" * 1001])
        with pytest.raises(ValidationError):
            InputValidator.validate_args(["bell\x07"])
        with pytest.raises(ValidationError):
            InputValidator.validate_args([True])
        with pytest.raises(ValidationError):
            InputValidator.validate_args({"a": 1})

    def test_args_allow_non_ascii(self):
        assert InputValidator.validate_args(["/srv/données", "--label", "日本"]) == (
            "/srv/données",
            "--label",
            "日本",
        )
        assert InputValidator.validate_args(["line one\nline two\t"]) == ("line one\nline two\t",)
        with pytest.raises(ValidationError):
            InputValidator.validate_args(["esc\x1b[31m"])

    def test_url(self):
        assert InputValidator.validate_url("https://hooks.example.com/mesh")
        for bad in ("", "ftp://example.com", "https://", 123, ["https://x"]):
            with pytest.raises(ValidationError):
                InputValidator.validate_url(bad)

    def test_seconds(self):
        assert InputValidator.validate_seconds("2.5", "interval") == 2.5
        for bad in (0, -1, "abc", None, True):
            with pytest.raises(ValidationError):
                InputValidator.validate_seconds(bad, "interval")

    def test_positive_int(self):
        assert InputValidator.validate_positive_int("3", "failure_threshold") == 3
        with pytest.raises(ValidationError):
            InputValidator.validate_positive_int(0, "failure_threshold")

    def test_output_format_and_severity(self):
        assert InputValidator.validate_output_format("JSON") == OutputFormat.JSON
        assert InputValidator.validate_severity("High") == Severity.ERROR
        with pytest.raises(ValidationError):
            InputValidator.validate_severity("severe-ish")

    def test_success_codes(self):
        assert InputValidator.validate_success_codes(None) == (0,)
        assert InputValidator.validate_success_codes(1) == (1,)
        assert InputValidator.validate_success_codes([0, 2]) == (0, 2)
        for bad in ([], ["0"], [-1], [False]):
            with pytest.raises(ValidationError):
                InputValidator.validate_success_codes(bad)

    def test_markers(self):
        assert InputValidator.validate_markers({"leak": "critical"}) == (("leak", Severity.CRITICAL),)
        with pytest.raises(ValidationError):
            InputValidator.validate_markers(["leak"])
        with pytest.raises(ValidationError):
            InputValidator.validate_markers({"  ": "error"})
