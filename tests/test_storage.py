"""Tests for UploadStore. Real filesystem under tmp_path."""

import os
import re
import stat
from pathlib import Path

import pytest

from script_panel.exceptions import FileNameValidationError, InputValidationError, UploadNotFoundError
from script_panel.storage import UploadStore, sanitize_name

STORED_NAME = re.compile(r"^\d{13}_[0-9a-f-]{36}_(?P<original>.+)$")


class TestSanitizeName:
    @pytest.mark.parametrize(
        ("original", "expected"),
        [
            ("hello.py", "hello.py"),
            ("my script (1).py", "my_script__1_.py"),
            ("../../etc/passwd", "____etc_passwd"),
            ("..hidden", "_hidden"),
            ("naïve.sh", "na_ve.sh"),
            ("", "_"),
        ],
    )
    def test_sanitize(self, original: str, expected: str) -> None:
        assert sanitize_name(original) == expected


class TestUploadStore:
    async def test_save_and_resolve(self, upload_dir: Path) -> None:
        store = UploadStore(upload_dir)

        name = await store.save("hello.py", b"print('hi')\n")

        match = STORED_NAME.match(name)
        assert match is not None
        assert match["original"] == "hello.py"
        path = await store.resolve(name)
        assert path == upload_dir / name
        assert path.read_bytes() == b"print('hi')\n"
        assert stat.S_IMODE(path.stat().st_mode) == 0o755

    async def test_same_file_twice_no_collision(self, upload_dir: Path) -> None:
        store = UploadStore(upload_dir)
        first = await store.save("hello.py", b"1")
        second = await store.save("hello.py", b"2")
        assert first != second

    async def test_save_creates_directory(self, tmp_path: Path) -> None:
        store = UploadStore(tmp_path / "fresh" / "uploads")
        name = await store.save("a.sh", b"echo a\n")
        assert (tmp_path / "fresh" / "uploads" / name).is_file()

    async def test_stored_name_length_bounded(self, upload_dir: Path) -> None:
        store = UploadStore(upload_dir)
        name = await store.save("x" * 400 + ".py", b"")
        assert len(name) <= 300

    async def test_size_limit(self, upload_dir: Path) -> None:
        store = UploadStore(upload_dir, max_size_bytes=4)
        with pytest.raises(InputValidationError):
            await store.save("big.py", b"12345")
        assert list(upload_dir.iterdir()) == []

    async def test_save_file_copies(self, upload_dir: Path, tmp_path: Path) -> None:
        source = tmp_path / "local.py"
        source.write_bytes(b"x" * 3_000_000)
        store = UploadStore(upload_dir)

        name = await store.save_file(source)

        assert name.endswith("_local.py")
        assert (upload_dir / name).read_bytes() == source.read_bytes()

    async def test_resolve_missing(self, upload_dir: Path) -> None:
        store = UploadStore(upload_dir)
        with pytest.raises(UploadNotFoundError):
            await store.resolve("nope.py")

    async def test_resolve_directory_is_missing(self, upload_dir: Path) -> None:
        (upload_dir / "subdir").mkdir()
        store = UploadStore(upload_dir)
        with pytest.raises(UploadNotFoundError):
            await store.resolve("subdir")

    async def test_resolve_traversal(self, upload_dir: Path) -> None:
        store = UploadStore(upload_dir)
        with pytest.raises(FileNameValidationError):
            await store.resolve("../etc/passwd")

    async def test_list_newest_first(self, upload_dir: Path) -> None:
        store = UploadStore(upload_dir)
        old = await store.save("old.py", b"old")
        new = await store.save("new.py", b"newer")
        os.utime(upload_dir / old, (1_000_000, 1_000_000))
        os.utime(upload_dir / new, (2_000_000, 2_000_000))
        (upload_dir / "subdir").mkdir()

        files = await store.list_files()

        assert [f.name for f in files] == [new, old]
        assert files[0].size == 5
        assert files[0].mtime == 2_000_000

    async def test_list_missing_directory(self, tmp_path: Path) -> None:
        assert await UploadStore(tmp_path / "absent").list_files() == []

    async def test_delete(self, upload_dir: Path) -> None:
        store = UploadStore(upload_dir)
        name = await store.save("hello.py", b"")

        await store.delete(name)

        assert not (upload_dir / name).exists()
        with pytest.raises(UploadNotFoundError):
            await store.delete(name)

    async def test_delete_traversal(self, upload_dir: Path) -> None:
        store = UploadStore(upload_dir)
        with pytest.raises(FileNameValidationError):
            await store.delete("../outside")
