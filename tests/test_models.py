"""Tests for request validation, timeout clamping and the event wire format."""

import pytest
from pydantic import ValidationError

from script_panel.events import EVENT_ADAPTER, ErrorEvent, ExitEvent, StartEvent, StdoutEvent, parse_event
from script_panel.exceptions import FileNameValidationError, InputValidationError
from script_panel.models import ExecutionPolicy, RunRequest, RunState, clamp_timeout, validate_file_name

# ============================================================================
# Timeout clamping
# ============================================================================


class TestClampTimeout:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, 30),
            (0, 30),
            ("", 30),
            ("abc", 30),
            (True, 30),
            (1, 1),
            (5, 5),
            ("10", 10),
            (12.7, 12),
            (300, 300),
            (301, 300),
            (10_000, 300),
            (-5, 1),
            ("2.5", 2),
            ("-0.5", 30),
            (float("inf"), 300),
            (float("-inf"), 1),
            ("inf", 300),
            (float("nan"), 30),
            ("1e400", 300),
            (10**400, 300),
        ],
    )
    def test_clamp(self, value: object, expected: int) -> None:
        assert clamp_timeout(value) == expected

    def test_custom_default(self) -> None:
        assert clamp_timeout(None, default=7) == 7
        assert clamp_timeout(None, default=900) == 300
        assert clamp_timeout("abc", default=7) == 7
        assert clamp_timeout(float("nan"), default=7) == 7


# ============================================================================
# RunRequest
# ============================================================================


class TestRunRequest:
    """File name validation happens before anything touches the filesystem."""

    @pytest.mark.parametrize(
        "file_name",
        [
            "../etc/passwd",
            "..",
            "a..b.py",
            "dir/hello.py",
            "/etc/passwd",
            "dir\\hello.py",
            "hello\x00.py",
            "",
            "x" * 301,
        ],
    )
    def test_rejected(self, file_name: str) -> None:
        with pytest.raises(FileNameValidationError) as exc_info:
            RunRequest.parse(file_name)
        assert exc_info.value.message.startswith("Invalid file name")
        assert isinstance(exc_info.value, InputValidationError)

    def test_non_string_rejected(self) -> None:
        with pytest.raises(FileNameValidationError):
            RunRequest.parse(None)
        with pytest.raises(FileNameValidationError):
            RunRequest.parse(42)

    def test_length_bound_inclusive(self) -> None:
        request = RunRequest.parse("x" * 300)
        assert len(request.file_name) == 300

    def test_timeout_clamped(self) -> None:
        assert RunRequest.parse("hello.py", 0).timeout_seconds == 30
        assert RunRequest.parse("hello.py", 9999).timeout_seconds == 300
        assert RunRequest.parse("hello.py", "15").timeout_seconds == 15
        assert RunRequest(file_name="hello.py").timeout_seconds == 30

    def test_parse_uses_given_default(self) -> None:
        assert RunRequest.parse("hello.py", default_timeout=7).timeout_seconds == 7
        assert RunRequest.parse("hello.py", 0, default_timeout=7).timeout_seconds == 7
        assert RunRequest.parse("hello.py", "abc", default_timeout=7).timeout_seconds == 7
        assert RunRequest.parse("hello.py", 12, default_timeout=7).timeout_seconds == 12

    def test_frozen(self) -> None:
        request = RunRequest.parse("hello.py")
        with pytest.raises(ValidationError):
            request.file_name = "other.py"  # type: ignore[misc]

    def test_validate_file_name(self) -> None:
        assert validate_file_name("1718000000000_x_hello.py") == "1718000000000_x_hello.py"
        with pytest.raises(FileNameValidationError):
            validate_file_name("../hello.py")


class TestRunState:
    def test_terminal_states(self) -> None:
        assert {s for s in RunState if s.is_terminal} == {RunState.COMPLETED, RunState.KILLED, RunState.ERRORED}


class TestExecutionPolicy:
    def test_render_plain(self) -> None:
        policy = ExecutionPolicy(image="alpine:3.18", command_template="./{file}")
        assert policy.render_command("tool") == "./tool"

    def test_render_quotes_shell_metacharacters(self) -> None:
        policy = ExecutionPolicy(image="alpine:3.18", command_template="sh {file}")
        assert policy.render_command("x;rm -rf .sh") == "sh 'x;rm -rf .sh'"


# ============================================================================
# Events
# ============================================================================


class TestEvents:
    """JSON wire format, discriminated by ``type``."""

    def test_parse_each_type(self) -> None:
        assert isinstance(parse_event('{"type": "start", "run_id": "r", "file_name": "a.py"}'), StartEvent)
        assert isinstance(parse_event('{"type": "stdout", "run_id": "r", "chunk": "hi"}'), StdoutEvent)
        assert isinstance(parse_event('{"type": "error", "run_id": "r", "error": "boom"}'), ErrorEvent)
        event = parse_event('{"type": "exit", "run_id": "r", "signal": "SIGKILL", "killed": true}')
        assert isinstance(event, ExitEvent)
        assert event.exit_code is None
        assert event.killed is True

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_event('{"type": "progress", "run_id": "r"}')

    def test_serialized_exit_round_trips(self) -> None:
        event = ExitEvent(run_id="r", exit_code=0)
        parsed = EVENT_ADAPTER.validate_json(event.model_dump_json())
        assert parsed == event

    def test_terminal_flags(self) -> None:
        assert ExitEvent(run_id="r", exit_code=0).is_terminal
        assert ErrorEvent(run_id="r", error="x").is_terminal
        assert not StdoutEvent(run_id="r", chunk="x").is_terminal
        assert not StartEvent(run_id="r", file_name="a.py").is_terminal
