"""Configuration schema for the synchronized file pair."""

import posixpath
from pathlib import Path
from typing import Any, Dict, List

from pydantic import BaseModel, Field, validator


class GoogleClientConfig(BaseModel):
    """OAuth client credentials of an installed Google application."""

    client_id: str = Field(..., description="OAuth client identifier")
    client_secret: str = Field(..., description="OAuth client secret")
    redirect_uris: List[str] = Field(
        default_factory=lambda: ["http://localhost"],
        description="Redirect URIs registered for the client"
    )
    auth_uri: str = Field(default="https://accounts.google.com/o/oauth2/auth")
    token_uri: str = Field(default="https://oauth2.googleapis.com/token")

    class Config:
        extra = "ignore"

    @validator('redirect_uris')
    def validate_redirect_uris(cls, v):
        if not v:
            raise ValueError("At least one redirect URI is required")
        return v

    @property
    def redirect_uri(self) -> str:
        """The redirect URI used for the authorization flow."""
        return self.redirect_uris[0]


class SyncConfig(BaseModel):
    """One local file and the remote path it is kept in agreement with.

    The settings file uses camelCase keys (``localFilePath``,
    ``remoteFilePath``); snake_case names are accepted as well.
    """

    local_file_path: Path = Field(..., alias="localFilePath", description="Path of the local file")
    remote_file_path: str = Field(..., alias="remoteFilePath", description="Slash-separated Drive path")
    google: GoogleClientConfig = Field(..., description="OAuth client credentials")

    class Config:
        populate_by_name = True
        extra = "ignore"

    @validator('local_file_path')
    def validate_local_file_path(cls, v):
        v = Path(v).expanduser()
        if not v.name:
            raise ValueError("localFilePath must name a file")
        return v

    @validator('remote_file_path')
    def validate_remote_file_path(cls, v):
        v = v.strip()
        if not v or v.endswith("/"):
            raise ValueError("remoteFilePath must name a file")
        if posixpath.basename(v) in (".", ".."):
            raise ValueError("remoteFilePath must name a file")
        return v

    @validator('google', pre=True)
    def unwrap_client_secrets(cls, v):
        """Accept client secrets downloaded from the Google Cloud console."""
        if isinstance(v, dict):
            for key in ("installed", "web"):
                if key in v and isinstance(v[key], dict):
                    return v[key]
        return v


SYNC_CONFIG_EXAMPLE: Dict[str, Any] = {
    "localFilePath": "~/Documents/notes.md",
    "remoteFilePath": "sync/notes/notes.md",
    "google": {
        "client_id": "your-client-id.apps.googleusercontent.com",
        "client_secret": "your-client-secret",
        "redirect_uris": ["http://localhost"]
    }
}
