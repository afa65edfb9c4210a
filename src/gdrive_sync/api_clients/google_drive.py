"""Google Drive API client implementation."""

import asyncio
import functools
import mimetypes
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional, BinaryIO, Union

import google.auth.exceptions
import httplib2
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload, MediaIoBaseDownload

from .base import (
    FOLDER_MIME_TYPE,
    RemoteFile,
    RemoteAPIError,
    AuthenticationError,
    RateLimitError,
    format_timestamp,
)
from ..config.settings import GoogleDriveSettings, get_settings
from ..utils.logging import get_logger, log_async_execution_time


FILE_FIELDS = "id, name, mimeType, md5Checksum, modifiedTime, parents, size"

RATE_LIMIT_REASONS = {"rateLimitExceeded", "userRateLimitExceeded"}


def escape_query_value(value: str) -> str:
    """Escape a literal for use inside a single-quoted Drive query string."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveClient:
    """Google Drive API client for single file synchronization.

    Every request is executed exactly once; retrying is left to the caller.
    """

    def __init__(self, credentials: Credentials, settings: Optional[GoogleDriveSettings] = None):
        """Initialize Google Drive client.

        Args:
            credentials: Authorized user credentials
            settings: Drive API settings, defaults to the application settings
        """
        self.credentials = credentials
        self.settings = settings or get_settings().google_drive
        self.service = None
        self._authenticated = False
        self.logger = get_logger(self.__class__.__name__)

    @log_async_execution_time
    async def authenticate(self) -> bool:
        """Build the Drive service and verify the credentials with a cheap request."""
        try:
            self.service = build(
                "drive",
                self.settings.api_version,
                credentials=self.credentials,
                cache_discovery=False
            )
        except google.auth.exceptions.GoogleAuthError as e:
            raise AuthenticationError(f"Invalid credentials: {e}") from e

        about = await self._run("authenticate", self.service.about().get(fields="user").execute)
        user_email = about.get("user", {}).get("emailAddress", "Unknown")

        self._authenticated = True
        self.logger.info("Google Drive authentication successful", user_email=user_email)

        return True

    async def find_files(
        self,
        name: str,
        parent_id: Optional[str] = None,
        folders_only: bool = False,
        exclude_folders: bool = False
    ) -> List[RemoteFile]:
        """List non-trashed entries whose name equals ``name`` exactly.

        Results keep the order the API returned them in.
        """
        await self._ensure_authenticated()

        query = self._build_query(name, parent_id, folders_only, exclude_folders)
        files: List[RemoteFile] = []
        page_token = None

        while True:
            request = self.service.files().list(
                q=query,
                spaces="drive",
                fields=f"nextPageToken, files({FILE_FIELDS})",
                pageSize=100,
                pageToken=page_token
            )
            result = await self._run("list", request.execute)

            files.extend(RemoteFile.from_api(item) for item in result.get("files", []))
            page_token = result.get("nextPageToken")
            if not page_token:
                break

        self.logger.debug("Listed Google Drive files", query=query, files_count=len(files))
        return files

    async def find_file(self, name: str) -> Optional[RemoteFile]:
        """Return the first non-folder file named ``name``, or None."""
        files = await self.find_files(name, exclude_folders=True)
        if len(files) > 1:
            self.logger.warning(
                "Multiple remote files share this name, using the first",
                name=name,
                matches=[f.file_id for f in files]
            )
        return files[0] if files else None

    async def find_folder(self, name: str, parent_id: Optional[str] = None) -> Optional[RemoteFile]:
        """Return the first folder named ``name`` (inside ``parent_id`` when given), or None."""
        folders = await self.find_files(name, parent_id=parent_id, folders_only=True)
        return folders[0] if folders else None

    async def create_folder(self, name: str, parent_id: Optional[str] = None) -> RemoteFile:
        """Create a folder; without ``parent_id`` it lands in the Drive root."""
        await self._ensure_authenticated()

        body = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        if parent_id:
            body["parents"] = [parent_id]

        request = self.service.files().create(body=body, fields=FILE_FIELDS)
        created = RemoteFile.from_api(await self._run("create_folder", request.execute))

        self.logger.info("Created remote folder", name=name, folder_id=created.file_id, parent_id=parent_id)
        return created

    @log_async_execution_time
    async def create_file(
        self,
        local_path: Union[str, Path],
        name: str,
        parent_id: Optional[str] = None,
        modified_time: Optional[datetime] = None
    ) -> RemoteFile:
        """Upload ``local_path`` as a new file named ``name``."""
        await self._ensure_authenticated()

        body = {"name": name}
        if parent_id:
            body["parents"] = [parent_id]
        if modified_time:
            body["modifiedTime"] = format_timestamp(modified_time)

        request = self.service.files().create(
            body=body,
            media_body=self._media_upload(local_path),
            fields=FILE_FIELDS
        )
        return RemoteFile.from_api(await self._run("create_file", request.execute))

    @log_async_execution_time
    async def update_file(
        self,
        file_id: str,
        local_path: Union[str, Path],
        modified_time: Optional[datetime] = None
    ) -> RemoteFile:
        """Replace the content of an existing file with ``local_path``."""
        await self._ensure_authenticated()

        body = {}
        if modified_time:
            body["modifiedTime"] = format_timestamp(modified_time)

        request = self.service.files().update(
            fileId=file_id,
            body=body,
            media_body=self._media_upload(local_path),
            fields=FILE_FIELDS
        )
        return RemoteFile.from_api(await self._run("update_file", request.execute))

    @log_async_execution_time
    async def download_file(self, file_id: str, fh: BinaryIO) -> None:
        """Stream the content of ``file_id`` into the writable binary ``fh``."""
        await self._ensure_authenticated()

        request = self.service.files().get_media(fileId=file_id)
        await self._run("download_file", self._download, request, fh)

    def _download(self, request, fh: BinaryIO) -> None:
        """Pull all chunks of a media request (runs in the executor)."""
        downloader = MediaIoBaseDownload(fh, request, chunksize=self.settings.download_chunk_size)
        done = False
        while not done:
            status, done = downloader.next_chunk()
            if status:
                self.logger.debug("Download progress", progress=f"{status.progress() * 100:.0f}%")

    def _media_upload(self, local_path: Union[str, Path]) -> MediaFileUpload:
        mime_type, _ = mimetypes.guess_type(str(local_path))
        # Resumable sessions cannot carry an empty body
        resumable = os.path.getsize(local_path) > 0
        return MediaFileUpload(
            str(local_path),
            mimetype=mime_type or "application/octet-stream",
            chunksize=self.settings.upload_chunk_size,
            resumable=resumable
        )

    def _build_query(
        self,
        name: str,
        parent_id: Optional[str] = None,
        folders_only: bool = False,
        exclude_folders: bool = False
    ) -> str:
        """Build Google Drive API query string."""
        query_parts = [f"name = '{escape_query_value(name)}'", "trashed = false"]

        if folders_only:
            query_parts.append(f"mimeType = '{FOLDER_MIME_TYPE}'")
        elif exclude_folders:
            query_parts.append(f"mimeType != '{FOLDER_MIME_TYPE}'")

        if parent_id:
            query_parts.append(f"'{escape_query_value(parent_id)}' in parents")

        return " and ".join(query_parts)

    async def _ensure_authenticated(self) -> None:
        if not self._authenticated:
            await self.authenticate()

    async def _run(self, operation: str, func, *args):
        """Run a blocking API call in the thread pool, translating its errors."""
        try:
            return await asyncio.get_event_loop().run_in_executor(
                None, functools.partial(func, *args)
            )
        except HttpError as e:
            raise self._translate_http_error(e, operation) from e
        except google.auth.exceptions.GoogleAuthError as e:
            raise AuthenticationError(f"Google Drive {operation} failed to authorize: {e}") from e
        except (httplib2.HttpLib2Error, OSError) as e:
            raise RemoteAPIError(f"Google Drive {operation} failed: {e}") from e

    def _translate_http_error(self, error: HttpError, operation: str) -> RemoteAPIError:
        status = error.resp.status
        message = f"Google Drive {operation} failed with HTTP {status}: {error}"

        details = error.error_details if isinstance(error.error_details, list) else []
        reasons = {d.get("reason") for d in details if isinstance(d, dict)}

        if status == 429 or (status == 403 and reasons & RATE_LIMIT_REASONS):
            retry_after = error.resp.get("retry-after")
            return RateLimitError(message, int(retry_after) if retry_after and retry_after.isdigit() else None)
        if status == 401:
            return AuthenticationError(message, status=status)
        return RemoteAPIError(message, status=status)
