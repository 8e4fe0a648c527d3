"""Upload store: scripts kept by name in one flat directory.

Stored names are ``{epoch_ms}_{uuid4}_{sanitized original name}`` so two
uploads of the same file never collide. The run pipeline only needs
resolve(); listing, saving and deleting serve the panel around it.
"""

from __future__ import annotations

import asyncio
import os
import re
import stat
import time
from pathlib import Path
from uuid import uuid4

import aiofiles
import aiofiles.os

from script_panel._logging import get_logger
from script_panel.constants import MAX_FILE_NAME_LENGTH, MAX_UPLOAD_SIZE_BYTES, UPLOAD_FILE_MODE
from script_panel.exceptions import InputValidationError, UploadNotFoundError
from script_panel.models import FileInfo, validate_file_name

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^\w.\-]", re.ASCII)
_DOT_RUNS = re.compile(r"\.{2,}")
_COPY_CHUNK_SIZE = 1024 * 1024


def sanitize_name(original_name: str) -> str:
    """Replace everything but ASCII word characters, '.' and '-' with '_'."""
    safe = _UNSAFE_CHARS.sub("_", original_name)
    return _DOT_RUNS.sub("_", safe) or "_"


class UploadStore:
    """Flat directory of uploaded scripts."""

    def __init__(self, upload_dir: Path, *, max_size_bytes: int = MAX_UPLOAD_SIZE_BYTES) -> None:
        self.upload_dir = upload_dir
        self.max_size_bytes = max_size_bytes

    async def ensure_dir(self) -> None:
        await aiofiles.os.makedirs(self.upload_dir, exist_ok=True)

    def _path(self, file_name: str) -> Path:
        return self.upload_dir / validate_file_name(file_name)

    async def resolve(self, file_name: str) -> Path:
        """Path of a stored file.

        Raises:
            FileNameValidationError: invalid name.
            UploadNotFoundError: no such file.
        """
        path = self._path(file_name)
        if not await aiofiles.os.path.isfile(path):
            raise UploadNotFoundError("File not found", context={"file_name": file_name})
        return path

    async def list_files(self) -> list[FileInfo]:
        """Stored files, newest first."""
        if not await aiofiles.os.path.isdir(self.upload_dir):
            return []
        infos: list[FileInfo] = []
        for name in await aiofiles.os.listdir(self.upload_dir):
            try:
                st = await aiofiles.os.stat(self.upload_dir / name)
            except FileNotFoundError:
                continue  # deleted while listing
            if not stat.S_ISREG(st.st_mode):
                continue
            infos.append(FileInfo(name=name, size=st.st_size, mtime=st.st_mtime))
        infos.sort(key=lambda info: info.mtime, reverse=True)
        return infos

    async def save(self, original_name: str, data: bytes) -> str:
        """Store *data* under a fresh name derived from *original_name*.

        Raises:
            InputValidationError: data exceeds the upload size limit.

        Returns:
            The stored file name.
        """
        if len(data) > self.max_size_bytes:
            raise InputValidationError(
                f"Upload is {len(data)} bytes, exceeds {self.max_size_bytes}",
                context={"size": len(data)},
            )
        await self.ensure_dir()
        stored_name = self._stored_name(original_name)
        path = self.upload_dir / stored_name
        async with aiofiles.open(path, "wb") as f:
            await f.write(data)
        await asyncio.to_thread(os.chmod, path, UPLOAD_FILE_MODE)
        logger.info("File uploaded", extra={"file_name": stored_name, "size": len(data)})
        return stored_name

    async def save_file(self, source: Path) -> str:
        """Copy a local file into the store (streamed), returning its stored name."""
        size = (await aiofiles.os.stat(source)).st_size
        if size > self.max_size_bytes:
            raise InputValidationError(
                f"File {source.name} is {size} bytes, exceeds {self.max_size_bytes}",
                context={"size": size},
            )
        await self.ensure_dir()
        stored_name = self._stored_name(source.name)
        path = self.upload_dir / stored_name
        async with aiofiles.open(source, "rb") as src, aiofiles.open(path, "wb") as dst:
            while chunk := await src.read(_COPY_CHUNK_SIZE):
                await dst.write(chunk)
        await asyncio.to_thread(os.chmod, path, UPLOAD_FILE_MODE)
        logger.info("File uploaded", extra={"file_name": stored_name, "size": size})
        return stored_name

    async def delete(self, file_name: str) -> None:
        """Remove a stored file.

        Raises:
            FileNameValidationError: invalid name.
            UploadNotFoundError: no such file.
        """
        path = self._path(file_name)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError as e:
            raise UploadNotFoundError("File not found", context={"file_name": file_name}) from e
        logger.info("File deleted", extra={"file_name": file_name})

    @staticmethod
    def _stored_name(original_name: str) -> str:
        prefix = f"{int(time.time() * 1000)}_{uuid4()}_"
        return prefix + sanitize_name(original_name)[: MAX_FILE_NAME_LENGTH - len(prefix)]
