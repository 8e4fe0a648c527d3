"""Execution policy resolution.

Maps a file name to the container image and command used to run it. The
table is fixed; the lookup is on the lower-cased extension only. Unknown
extensions run the file directly on a minimal base image.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from types import MappingProxyType
from typing import Final

from script_panel.models import ExecutionPolicy

DEFAULT_POLICY: Final[ExecutionPolicy] = ExecutionPolicy(image="alpine:3.18", command_template="./{file}")

POLICY_TABLE: Final[MappingProxyType[str, ExecutionPolicy]] = MappingProxyType(
    {
        ".py": ExecutionPolicy(image="python:3.11-slim", command_template="python {file}"),
        ".js": ExecutionPolicy(image="node:18-slim", command_template="node {file}"),
        ".sh": ExecutionPolicy(image="alpine:3.18", command_template="sh {file}"),
        ".pl": ExecutionPolicy(image="perl:5.36", command_template="perl {file}"),
    }
)


def file_extension(file_name: str) -> str:
    """Lower-cased extension including the dot ("" when there is none).

    Dotfiles such as ".bashrc" have no extension.
    """
    return PurePosixPath(file_name.replace("\\", "/")).suffix.lower()


def resolve(file_name: str) -> ExecutionPolicy:
    """Policy for *file_name*. Never fails."""
    return POLICY_TABLE.get(file_extension(file_name), DEFAULT_POLICY)
