"""Utilities for file operations."""

import re
from pathlib import Path
from typing import Union

import aiofiles
from loguru import logger

from bowerbird.utils import FilePath


class FileError(Exception):
    """Base exception for file operations."""

    pass


class FileWriteError(FileError):
    """Raised when file operations fail."""

    pass


class ParseError(FileError):
    """Raised when parsing file content fails."""

    pass


async def read_file_bytes(path: FilePath) -> bytes:
    """Read a file without decoding it.

    Raises:
        FileError: If the file cannot be read
    """
    try:
        async with aiofiles.open(path, mode="rb") as f:
            return await f.read()
    except OSError as e:
        raise FileError(f"Failed to read file {path}: {e}") from e


def decode_text(content: bytes, path: FilePath = "") -> str:
    """Decode note content as UTF-8.

    Raises:
        ParseError: If the content is not valid UTF-8
    """
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(f"File {path} is not valid UTF-8: {e}") from e


async def write_file_atomic(path: FilePath, content: Union[str, bytes]) -> None:
    """
    Write file with atomic operation using temporary file.

    Text is encoded as UTF-8 without newline translation; bytes are written
    verbatim, which is how rollbacks restore a file exactly.

    Args:
        path: Target file path (Path or string)
        content: Content to write

    Raises:
        FileWriteError: If write operation fails
    """
    path_obj = Path(path) if isinstance(path, str) else path
    temp_path = path_obj.with_suffix(".tmp")
    data = content.encode("utf-8") if isinstance(content, str) else content

    try:
        async with aiofiles.open(temp_path, mode="wb") as f:
            await f.write(data)

        # Atomic rename (this is fast, doesn't need async)
        temp_path.replace(path_obj)
        logger.debug("Wrote file atomically", path=str(path_obj), content_length=len(data))
    except OSError as e:
        temp_path.unlink(missing_ok=True)
        logger.error("Failed to write file", path=str(path_obj), error=str(e))
        raise FileWriteError(f"Failed to write file {path}: {e}") from e


def normalize_path_separators(path: str) -> str:
    """
    Normalize a user-supplied relative path to single forward slashes.

    Examples:
        >>> normalize_path_separators("folder//file.md")
        'folder/file.md'
        >>> normalize_path_separators("./ideas/")
        'ideas'
    """
    if not path:
        return ""

    normalized = path.replace("\\", "/")

    if normalized.startswith("./"):
        normalized = normalized[2:]

    normalized = re.sub(r"/+", "/", normalized)
    return normalized.rstrip("/")
