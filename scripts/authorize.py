#!/usr/bin/env python3
"""
Authorization script for Google Drive.

Runs the consent flow (or reuses stored tokens) and checks the resulting
credentials against the Drive API. Pass --force to discard stored tokens.
"""

import asyncio
import sys
from pathlib import Path

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv
from gdrive_sync.api_clients import GoogleDriveClient, RemoteAPIError
from gdrive_sync.auth import OAuthError, authorize
from gdrive_sync.config import ConfigurationError, get_settings, load_sync_config
from gdrive_sync.utils.logging import setup_logging


async def check_authorization(force_reauth: bool) -> bool:
    """Authorize and make one authenticated Drive request."""
    load_dotenv()

    setup_logging(log_level="INFO", log_format="console")

    try:
        sync_config = load_sync_config()
    except ConfigurationError as e:
        print(f"Error: {e}")
        return False

    print("Starting Google Drive authorization...")
    print(f"Client ID: {sync_config.google.client_id[:8]}...")
    print(f"Token file: {get_settings().token_path}")

    try:
        credentials = await authorize(sync_config.google, force_reauth=force_reauth)
        await GoogleDriveClient(credentials).authenticate()
    except (OAuthError, RemoteAPIError) as e:
        print(f"Authorization failed: {e}")
        return False

    print("Authorized. The sync can now run without a browser.")
    return True


if __name__ == "__main__":
    success = asyncio.run(check_authorization("--force" in sys.argv[1:]))
    sys.exit(0 if success else 1)
