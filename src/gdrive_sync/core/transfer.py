"""Upload and download of the synchronized file's content."""

import glob
import os
import stat
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from ..api_clients.base import RemoteAPIError, RemoteFile
from ..utils.logging import get_logger


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class TransferError(Exception):
    """Raised when moving file content between the local disk and the remote store fails."""

    def __init__(self, message: str, direction: str, path: Optional[str] = None):
        super().__init__(message)
        self.direction = direction
        self.path = path


def _timestamp_ns(value: datetime) -> int:
    delta = value - EPOCH
    return (delta.days * 86400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1000


def _default_file_mode() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


class TransferEngine:
    """Moves file content in either direction.

    Downloads are written to a hidden staging file next to the destination
    and renamed over it only once the whole stream has arrived, so the
    destination never holds partial content.
    """

    def __init__(self, client, staging_suffix: str = ".gdsync-partial"):
        self.client = client
        self.staging_suffix = staging_suffix
        self.logger = get_logger(self.__class__.__name__)

    async def upload(
        self,
        local_path: Union[str, Path],
        remote_file_id: Optional[str] = None,
        parent_id: Optional[str] = None,
        name: Optional[str] = None,
        modified_time: Optional[datetime] = None
    ) -> RemoteFile:
        """Upload ``local_path``.

        Updates ``remote_file_id`` in place when given, otherwise creates a
        new file under ``parent_id`` named ``name`` (default: the local
        basename). ``modified_time`` is stored as the remote modification
        time.
        """
        local_path = Path(local_path)

        try:
            if remote_file_id:
                remote_file = await self.client.update_file(
                    remote_file_id, local_path, modified_time=modified_time
                )
            else:
                remote_file = await self.client.create_file(
                    local_path, name or local_path.name, parent_id=parent_id, modified_time=modified_time
                )
        except (RemoteAPIError, OSError) as e:
            self.logger.error(
                "Upload failed, remote content may be partially updated",
                local_path=str(local_path),
                remote_file_id=remote_file_id,
                error=str(e)
            )
            raise TransferError(f"Upload of {local_path} failed: {e}", direction="upload", path=str(local_path)) from e

        self.logger.debug("Upload finished", local_path=str(local_path), remote_file_id=remote_file.file_id)
        return remote_file

    async def download(
        self,
        remote_file_id: str,
        local_path: Union[str, Path],
        remote_modified_time: Optional[datetime]
    ) -> Path:
        """Download ``remote_file_id`` to ``local_path``.

        The local modification time is set to ``remote_modified_time``. On
        failure any existing file at ``local_path`` is left untouched and
        the staging file is removed.
        """
        local_path = Path(local_path)
        # Write through symlinks so the link survives and its target is updated
        target_path = Path(os.path.realpath(local_path))
        staging_path = None

        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            self.cleanup_stale_staging(target_path)

            fd, staging_path = tempfile.mkstemp(
                prefix=self._staging_prefix(target_path),
                suffix=self.staging_suffix,
                dir=target_path.parent
            )
            with os.fdopen(fd, "wb") as fh:
                await self.client.download_file(remote_file_id, fh)
                fh.flush()
                os.fsync(fh.fileno())

            os.chmod(staging_path, self._final_mode(target_path))
            if remote_modified_time is not None:
                mtime_ns = _timestamp_ns(remote_modified_time)
                os.utime(staging_path, ns=(mtime_ns, mtime_ns))

            # Rename keeps the staged mtime, so content and time land together
            os.replace(staging_path, target_path)
            staging_path = None

        except (RemoteAPIError, OSError) as e:
            self.logger.error(
                "Download failed, local file left unchanged",
                remote_file_id=remote_file_id,
                local_path=str(local_path),
                error=str(e)
            )
            raise TransferError(
                f"Download of {remote_file_id} failed: {e}", direction="download", path=str(local_path)
            ) from e

        finally:
            if staging_path is not None:
                self._remove_quietly(staging_path)

        self.logger.debug("Download finished", remote_file_id=remote_file_id, local_path=str(local_path))
        return local_path

    def cleanup_stale_staging(self, local_path: Union[str, Path]) -> int:
        """Remove staging files an interrupted earlier download left behind."""
        local_path = Path(local_path)
        pattern = os.path.join(
            glob.escape(str(local_path.parent)),
            glob.escape(self._staging_prefix(local_path)) + "*" + glob.escape(self.staging_suffix)
        )

        removed = 0
        for stale in glob.glob(pattern):
            self._remove_quietly(stale)
            removed += 1

        if removed:
            self.logger.info("Removed stale staging files", local_path=str(local_path), count=removed)
        return removed

    @staticmethod
    def _staging_prefix(local_path: Path) -> str:
        return f".{local_path.name}."

    @staticmethod
    def _final_mode(local_path: Path) -> int:
        try:
            return stat.S_IMODE(os.stat(local_path).st_mode)
        except FileNotFoundError:
            return _default_file_mode()

    def _remove_quietly(self, path: Union[str, Path]) -> None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.warning("Could not remove staging file", path=str(path), error=str(e))
