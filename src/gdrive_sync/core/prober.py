"""File state probing for the local and the remote side."""

import asyncio
import hashlib
import os
import posixpath
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from ..utils.logging import get_logger

logger = get_logger(__name__)

HASH_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class FileDescriptor:
    """Normalized state of one side of the synchronized pair."""

    path: str
    exists: bool
    content_hash: Optional[str] = None
    modified_time: Optional[datetime] = None
    file_id: Optional[str] = None

    def __post_init__(self):
        if not self.exists and (self.content_hash or self.modified_time or self.file_id):
            raise ValueError("A missing file carries no hash, time or id")

    @classmethod
    def missing(cls, path: Union[str, Path]) -> "FileDescriptor":
        return cls(path=str(path), exists=False)

    def summary(self) -> str:
        if not self.exists:
            return "missing"
        modified = self.modified_time.isoformat() if self.modified_time else "unknown"
        return f"md5={self.content_hash} modified={modified}"


def md5_file(path: Union[str, Path]) -> str:
    """MD5 hex digest of the full content of ``path``."""
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _stat_and_hash(path: Path) -> FileDescriptor:
    try:
        stat = os.stat(path)
    except FileNotFoundError:
        return FileDescriptor.missing(path)

    if path.is_dir():
        raise IsADirectoryError(f"Local path is a directory: {path}")

    return FileDescriptor(
        path=str(path),
        exists=True,
        content_hash=md5_file(path),
        modified_time=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
    )


async def probe_local(path: Union[str, Path]) -> FileDescriptor:
    """Describe the local file.

    An absent file is a valid state and yields a missing descriptor; any
    other failure to read it (permissions, path is a directory) raises
    ``OSError``.
    """
    path = Path(path)
    descriptor = await asyncio.get_event_loop().run_in_executor(None, _stat_and_hash, path)
    logger.debug("Probed local file", path=str(path), state=descriptor.summary())
    return descriptor


async def probe_remote(client, remote_path: str) -> FileDescriptor:
    """Describe the remote file by exact basename match.

    When several remote files share the name the first one the API returns
    is used. Failures surface as ``RemoteAPIError``.
    """
    remote_file = await client.find_file(posixpath.basename(remote_path))
    if remote_file is None:
        descriptor = FileDescriptor.missing(remote_path)
    else:
        descriptor = FileDescriptor(
            path=remote_path,
            exists=True,
            content_hash=remote_file.md5_checksum,
            modified_time=remote_file.modified_time,
            file_id=remote_file.file_id
        )

    logger.debug("Probed remote file", path=remote_path, state=descriptor.summary())
    return descriptor
