"""Tests for execution policy resolution."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from script_panel.policy import DEFAULT_POLICY, POLICY_TABLE, file_extension, resolve


class TestResolve:
    """Extension → (image, command) table."""

    @pytest.mark.parametrize(
        ("file_name", "image", "command"),
        [
            ("hello.py", "python:3.11-slim", "python hello.py"),
            ("app.js", "node:18-slim", "node app.js"),
            ("setup.sh", "alpine:3.18", "sh setup.sh"),
            ("report.pl", "perl:5.36", "perl report.pl"),
            ("binary", "alpine:3.18", "./binary"),
            ("notes.txt", "alpine:3.18", "./notes.txt"),
        ],
    )
    def test_table(self, file_name: str, image: str, command: str) -> None:
        policy = resolve(file_name)
        assert policy.image == image
        assert policy.render_command(file_name) == command

    def test_extension_case_insensitive(self) -> None:
        assert resolve("HELLO.PY") == POLICY_TABLE[".py"]
        assert resolve("Run.Sh") == POLICY_TABLE[".sh"]

    def test_last_extension_wins(self) -> None:
        assert resolve("archive.tar.sh") == POLICY_TABLE[".sh"]
        assert resolve("script.py.txt") == DEFAULT_POLICY

    def test_dotfile_has_no_extension(self) -> None:
        assert file_extension(".py") == ""
        assert resolve(".py") == DEFAULT_POLICY

    def test_stored_name_format(self) -> None:
        """Stored names carry a timestamp/uuid prefix; only the suffix matters."""
        assert resolve("1718000000000_0b6f1c2e-1f7a-4c5e-9d3b-2f8a9e6c4d10_hello.py") == POLICY_TABLE[".py"]

    def test_file_name_is_shell_quoted(self) -> None:
        policy = resolve("it's here.py")
        assert policy.render_command("it's here.py") == "python 'it'\"'\"'s here.py'"

    def test_table_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            POLICY_TABLE[".rb"] = DEFAULT_POLICY  # type: ignore[index]

    @given(st.text(max_size=300))
    def test_total(self, file_name: str) -> None:
        """Every file name resolves to a table entry or the default."""
        policy = resolve(file_name)
        assert policy == DEFAULT_POLICY or policy in POLICY_TABLE.values()
        assert "{file}" in policy.command_template
