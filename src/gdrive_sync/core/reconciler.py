"""Reconciliation of one local file with one remote file."""

import asyncio
import posixpath
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union

from .directory_resolver import RemoteDirectoryResolver
from .prober import FileDescriptor, probe_local, probe_remote
from .transfer import TransferEngine
from ..utils.logging import StatusLog, get_logger, log_async_execution_time


class SyncOutcome(str, Enum):
    """Terminal classification of a sync run."""
    UPLOADED = "uploaded"
    DOWNLOADED = "downloaded"
    REMOTE_CREATED = "remote_created"
    NOOP_IDENTICAL = "noop_identical"
    NOTHING_TO_SYNC = "nothing_to_sync"
    ERROR = "error"


@dataclass
class SyncResult:
    """Result of a sync run."""

    outcome: SyncOutcome
    local: Optional[FileDescriptor] = None
    remote: Optional[FileDescriptor] = None
    error_message: Optional[str] = None
    sync_duration: Optional[float] = None

    @property
    def success(self) -> bool:
        return self.outcome is not SyncOutcome.ERROR

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1


def decide(local: FileDescriptor, remote: FileDescriptor) -> SyncOutcome:
    """Pick the action for a pair of descriptors.

    Equal hashes win over any timestamp difference. Otherwise the local side
    must be strictly newer to be pushed; equal (or unknown) times pull.
    """
    if local.exists and not remote.exists:
        return SyncOutcome.REMOTE_CREATED
    if not local.exists and remote.exists:
        return SyncOutcome.DOWNLOADED
    if not local.exists and not remote.exists:
        return SyncOutcome.NOTHING_TO_SYNC

    if local.content_hash == remote.content_hash:
        return SyncOutcome.NOOP_IDENTICAL

    if (
        local.modified_time is not None
        and remote.modified_time is not None
        and local.modified_time > remote.modified_time
    ):
        return SyncOutcome.UPLOADED
    return SyncOutcome.DOWNLOADED


class Reconciler:
    """Keeps one local file and one remote file in agreement.

    A run probes both sides, decides with ``decide`` and performs at most one
    transfer. Running it again without intervening changes is a no-op.
    """

    def __init__(
        self,
        client,
        local_file_path: Union[str, Path],
        remote_file_path: str,
        log=None,
        transfer_engine: Optional[TransferEngine] = None,
        directory_resolver: Optional[RemoteDirectoryResolver] = None
    ):
        """Initialize the reconciler.

        Args:
            client: Remote store client
            local_file_path: Path of the local file
            remote_file_path: Slash-separated remote path of the file
            log: ``log(message, level=..., no_newline=...)`` status callback
            transfer_engine: Transfer engine, built from ``client`` when omitted
            directory_resolver: Folder resolver, built from ``client`` when omitted
        """
        self.client = client
        self.local_file_path = Path(local_file_path)
        self.remote_file_path = remote_file_path
        self.logger = get_logger(self.__class__.__name__)
        self._log = log or StatusLog(self.logger)
        self.transfer_engine = transfer_engine or TransferEngine(client)
        self.directory_resolver = directory_resolver or RemoteDirectoryResolver(client, log=self._log)

        self.local: Optional[FileDescriptor] = None
        self.remote: Optional[FileDescriptor] = None

    @property
    def remote_file_name(self) -> str:
        return posixpath.basename(self.remote_file_path)

    @property
    def remote_directory(self) -> str:
        return posixpath.dirname(self.remote_file_path)

    async def probe(self) -> Tuple[FileDescriptor, FileDescriptor]:
        """Probe both sides concurrently."""
        self.local, self.remote = await asyncio.gather(
            probe_local(self.local_file_path),
            probe_remote(self.client, self.remote_file_path)
        )
        return self.local, self.remote

    @log_async_execution_time
    async def sync(self) -> SyncOutcome:
        """Run one reconciliation and return its outcome.

        Raises ``RemoteAPIError``, ``TransferError`` or ``OSError`` when a
        step fails; nothing is retried.
        """
        self._log("Checking local and remote file state... ", no_newline=True)
        local, remote = await self.probe()
        self._log("done")
        self._log(f"Local file {local.path}: {local.summary()}")
        self._log(f"Remote file {remote.path}: {remote.summary()}")

        outcome = decide(local, remote)

        if outcome is SyncOutcome.REMOTE_CREATED:
            self._log("File does not exist remotely yet. Attempt to upload it.")
            parent_id = await self.directory_resolver.ensure_directory_chain(self.remote_directory)
            await self.transfer_engine.upload(
                self.local_file_path,
                parent_id=parent_id,
                name=self.remote_file_name,
                modified_time=local.modified_time
            )

        elif outcome is SyncOutcome.UPLOADED:
            self._log("Local is newer. Push.")
            await self.transfer_engine.upload(
                self.local_file_path,
                remote_file_id=remote.file_id,
                modified_time=local.modified_time
            )

        elif outcome is SyncOutcome.DOWNLOADED:
            if local.exists:
                self._log("Remote is newer. Pull.")
            else:
                self._log("File does not exist locally yet. Download it.")
            await self.transfer_engine.download(remote.file_id, self.local_file_path, remote.modified_time)

        elif outcome is SyncOutcome.NOOP_IDENTICAL:
            self._log("Files are the same.")

        else:
            self._log("Neither the local nor the remote file exists. Nothing to do.", level="warning")

        self._log(f"Sync finished: {outcome.value}")
        return outcome
