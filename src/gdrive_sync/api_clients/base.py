"""Remote file metadata and remote store errors."""

from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
from dataclasses import dataclass, field


FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


@dataclass
class RemoteFile:
    """Normalized Drive file resource."""

    file_id: str
    name: str
    mime_type: Optional[str] = None
    md5_checksum: Optional[str] = None
    modified_time: Optional[datetime] = None
    parents: List[str] = field(default_factory=list)
    size: Optional[int] = None

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RemoteFile":
        """Build from a Drive v3 ``files`` resource."""
        size = None
        if data.get("size") is not None:
            try:
                size = int(data["size"])
            except (ValueError, TypeError):
                pass

        return cls(
            file_id=data["id"],
            name=data.get("name", ""),
            mime_type=data.get("mimeType"),
            md5_checksum=data.get("md5Checksum"),
            modified_time=parse_timestamp(data.get("modifiedTime")),
            parents=list(data.get("parents") or []),
            size=size
        )


def parse_timestamp(timestamp_str: Optional[str]) -> Optional[datetime]:
    """Parse a Drive RFC 3339 timestamp into an aware datetime."""
    if not timestamp_str:
        return None

    try:
        return datetime.fromisoformat(timestamp_str.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None


def format_timestamp(value: datetime) -> str:
    """Format an aware datetime as the RFC 3339 string Drive expects."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class RemoteAPIError(Exception):
    """Raised when a remote store request fails."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class AuthenticationError(RemoteAPIError):
    """Raised when the remote store rejects the credentials."""
    pass


class RateLimitError(RemoteAPIError):
    """Raised when API rate limit is exceeded."""

    def __init__(self, message: str, retry_after: Optional[int] = None):
        super().__init__(message, status=429)
        self.retry_after = retry_after
