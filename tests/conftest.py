"""Shared fixtures: an in-memory Drive client and helpers for local files."""

import hashlib
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from gdrive_sync.api_clients.base import FOLDER_MIME_TYPE, RemoteAPIError, RemoteFile


T1 = datetime(2024, 1, 2, 15, 30, 0, tzinfo=timezone.utc)
T2 = datetime(2024, 3, 4, 8, 15, 0, tzinfo=timezone.utc)

MUTATING_CALLS = {"create_folder", "create_file", "update_file", "download_file"}


def md5(content: bytes) -> str:
    return hashlib.md5(content).hexdigest()


def write_local(path: Path, content: bytes, modified_time: datetime) -> Path:
    """Write ``content`` to ``path`` and set its mtime exactly."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    ns = mtime_ns(modified_time)
    os.utime(path, ns=(ns, ns))
    return path


def mtime_ns(modified_time: datetime) -> int:
    delta = modified_time - datetime(1970, 1, 1, tzinfo=timezone.utc)
    return (delta.days * 86400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1000


class FakeDriveClient:
    """Drive client stand-in keeping files in memory and recording every call."""

    def __init__(self):
        self.entries: Dict[str, dict] = {}
        self.calls: List[tuple] = []
        self.fail_download = False
        self.fail_upload = False
        self.fail_list = False
        self._next_id = 0

    # Test helpers

    def add_file(
        self,
        name: str,
        content: bytes,
        modified_time: datetime,
        parent_id: Optional[str] = None
    ) -> RemoteFile:
        file_id = self._new_id("file")
        self.entries[file_id] = {
            "name": name,
            "mime_type": "text/plain",
            "parents": [parent_id] if parent_id else [],
            "content": content,
            "modified_time": modified_time,
        }
        return self._remote(file_id)

    def add_folder(self, name: str, parent_id: Optional[str] = None) -> RemoteFile:
        folder_id = self._new_id("folder")
        self.entries[folder_id] = {
            "name": name,
            "mime_type": FOLDER_MIME_TYPE,
            "parents": [parent_id] if parent_id else [],
            "content": None,
            "modified_time": T1,
        }
        return self._remote(folder_id)

    def folders(self) -> List[RemoteFile]:
        return [self._remote(i) for i, e in self.entries.items() if e["mime_type"] == FOLDER_MIME_TYPE]

    def files(self) -> List[RemoteFile]:
        return [self._remote(i) for i, e in self.entries.items() if e["mime_type"] != FOLDER_MIME_TYPE]

    def content_of(self, file_id: str) -> bytes:
        return self.entries[file_id]["content"]

    @property
    def mutating_calls(self) -> List[tuple]:
        return [call for call in self.calls if call[0] in MUTATING_CALLS]

    # Client interface

    async def find_files(self, name, parent_id=None, folders_only=False, exclude_folders=False):
        self.calls.append(("find_files", name, parent_id))
        if self.fail_list:
            raise RemoteAPIError("Google Drive list failed with HTTP 500", status=500)

        matches = []
        for file_id, entry in self.entries.items():
            is_folder = entry["mime_type"] == FOLDER_MIME_TYPE
            if entry["name"] != name:
                continue
            if folders_only and not is_folder:
                continue
            if exclude_folders and is_folder:
                continue
            if parent_id and parent_id not in entry["parents"]:
                continue
            matches.append(self._remote(file_id))
        return matches

    async def find_file(self, name):
        files = await self.find_files(name, exclude_folders=True)
        return files[0] if files else None

    async def find_folder(self, name, parent_id=None):
        folders = await self.find_files(name, parent_id=parent_id, folders_only=True)
        return folders[0] if folders else None

    async def create_folder(self, name, parent_id=None):
        self.calls.append(("create_folder", name, parent_id))
        return self.add_folder(name, parent_id)

    async def create_file(self, local_path, name, parent_id=None, modified_time=None):
        self.calls.append(("create_file", name, parent_id))
        if self.fail_upload:
            raise RemoteAPIError("Google Drive create_file failed with HTTP 503", status=503)
        content = Path(local_path).read_bytes()
        return self.add_file(name, content, self._drive_time(modified_time), parent_id)

    async def update_file(self, file_id, local_path, modified_time=None):
        self.calls.append(("update_file", file_id))
        if self.fail_upload:
            raise RemoteAPIError("Google Drive update_file failed with HTTP 503", status=503)
        entry = self.entries[file_id]
        entry["content"] = Path(local_path).read_bytes()
        entry["modified_time"] = self._drive_time(modified_time)
        return self._remote(file_id)

    async def download_file(self, file_id, fh):
        self.calls.append(("download_file", file_id))
        content = self.entries[file_id]["content"]
        if self.fail_download:
            fh.write(content[: len(content) // 2])
            raise RemoteAPIError("Google Drive download_file failed: connection reset")
        fh.write(content)

    # Internals

    def _new_id(self, kind: str) -> str:
        self._next_id += 1
        return f"{kind}_{self._next_id}"

    @staticmethod
    def _drive_time(modified_time: Optional[datetime]) -> datetime:
        # Drive keeps millisecond precision
        value = modified_time or datetime.now(timezone.utc)
        return value.replace(microsecond=(value.microsecond // 1000) * 1000)

    def _remote(self, file_id: str) -> RemoteFile:
        entry = self.entries[file_id]
        content = entry["content"]
        return RemoteFile(
            file_id=file_id,
            name=entry["name"],
            mime_type=entry["mime_type"],
            md5_checksum=md5(content) if content is not None else None,
            modified_time=entry["modified_time"],
            parents=list(entry["parents"]),
            size=len(content) if content is not None else None
        )


class RecordingLog:
    """Collects status lines passed to the ``log`` capability."""

    def __init__(self):
        self.lines: List[tuple] = []

    def __call__(self, message, level="info", no_newline=False):
        self.lines.append((message, level, no_newline))

    @property
    def messages(self) -> List[str]:
        return [line[0] for line in self.lines]


@pytest.fixture
def fake_drive():
    return FakeDriveClient()


@pytest.fixture
def status_log():
    return RecordingLog()


@pytest.fixture
def local_file(tmp_path):
    return tmp_path / "notes" / "notes.md"
