"""Core reconciliation logic package."""

from .prober import FileDescriptor, probe_local, probe_remote, md5_file
from .directory_resolver import RemoteDirectoryResolver, split_remote_directory
from .transfer import TransferEngine, TransferError
from .reconciler import Reconciler, SyncOutcome, SyncResult, decide

__all__ = [
    "FileDescriptor",
    "probe_local",
    "probe_remote",
    "md5_file",
    "RemoteDirectoryResolver",
    "split_remote_directory",
    "TransferEngine",
    "TransferError",
    "Reconciler",
    "SyncOutcome",
    "SyncResult",
    "decide"
]
