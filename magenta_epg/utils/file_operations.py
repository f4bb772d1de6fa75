"""
File operation utilities

This module handles atomic artifact writes, artifact reads and file ages.
"""
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

import aiofiles
import aiofiles.os


logger = logging.getLogger(__name__)


async def write_file_atomic(path: Path, data: bytes) -> None:
    """
    Write data to path so readers never observe a partial file

    The data goes to a temporary sibling first and is then renamed over path.

    Args:
        path: Destination file
        data: Bytes to write

    Raises:
        OSError: If the file cannot be written or renamed
    """
    temp_file = path.with_name(f".{path.name}.{uuid4().hex}.tmp")
    try:
        async with aiofiles.open(temp_file, 'wb') as f:
            await f.write(data)
            await f.flush()
            os.fsync(f.fileno())
        await aiofiles.os.replace(temp_file, path)
    except OSError:
        cleanup_temp_file(temp_file)
        raise

    logger.info(f"Wrote {len(data) / 1024:.1f} KB to {path}")


async def read_file(path: Path) -> bytes | None:
    """
    Read a file

    Returns:
        File content, or None if the file does not exist
    """
    try:
        async with aiofiles.open(path, 'rb') as f:
            return await f.read()
    except FileNotFoundError:
        return None


def file_modified_at(path: Path) -> datetime | None:
    """Modification time of path as aware UTC datetime, None if missing."""
    try:
        return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    except FileNotFoundError:
        return None


def file_age(path: Path, now: datetime | None = None) -> timedelta | None:
    """Time since path was last modified, None if missing."""
    modified_at = file_modified_at(path)
    if modified_at is None:
        return None
    return (now or datetime.now(timezone.utc)) - modified_at


def cleanup_temp_file(file_path: Path) -> bool:
    """
    Safely delete a temporary file

    Args:
        file_path: Path to file to delete

    Returns:
        True if deleted successfully, False otherwise
    """
    if not file_path or not file_path.exists():
        return False

    try:
        file_path.unlink()
        logger.debug(f"Cleaned up temporary file: {file_path}")
        return True
    except (OSError, PermissionError) as e:
        logger.warning(f"Failed to delete temporary file {file_path}: {e}")
        return False
