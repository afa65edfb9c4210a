"""Remote store client for Google Drive."""

from .base import (
    FOLDER_MIME_TYPE,
    RemoteFile,
    RemoteAPIError,
    AuthenticationError,
    RateLimitError,
    parse_timestamp,
    format_timestamp
)

from .google_drive import GoogleDriveClient, escape_query_value

__all__ = [
    "FOLDER_MIME_TYPE",
    "RemoteFile",
    "RemoteAPIError",
    "AuthenticationError",
    "RateLimitError",
    "parse_timestamp",
    "format_timestamp",

    "GoogleDriveClient",
    "escape_query_value"
]
