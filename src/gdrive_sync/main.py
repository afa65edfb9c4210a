"""Main application entry point."""

import asyncio
import sys
import time
from typing import Optional

from google.oauth2.credentials import Credentials

from .api_clients import GoogleDriveClient, RemoteAPIError
from .auth import OAuthError, authorize
from .config import ConfigurationError, SyncConfig, get_settings, load_sync_config
from .core import Reconciler, SyncOutcome, SyncResult, TransferError
from .utils.logging import StatusLog, get_logger, setup_logging


async def run_sync(
    sync_config: SyncConfig,
    credentials: Credentials,
    log=None,
    client: Optional[GoogleDriveClient] = None
) -> SyncResult:
    """Reconcile the configured file pair once.

    Sync failures do not raise; they are logged and reported as an
    ``ERROR`` outcome.
    """
    logger = get_logger("run_sync")
    start_time = time.monotonic()

    client = client or GoogleDriveClient(credentials)
    reconciler = Reconciler(
        client=client,
        local_file_path=sync_config.local_file_path,
        remote_file_path=sync_config.remote_file_path,
        log=log
    )

    result = SyncResult(outcome=SyncOutcome.ERROR)

    try:
        result.outcome = await reconciler.sync()

    except TransferError as e:
        if e.direction == "upload":
            logger.error("Upload failed; the remote file may be partially updated", error=str(e))
        else:
            logger.error("Download failed; the local file was not modified", error=str(e))
        result.error_message = str(e)

    except RemoteAPIError as e:
        logger.error("Remote store request failed", error=str(e), status=e.status)
        result.error_message = str(e)

    except OSError as e:
        logger.error("Local file access failed", error=str(e))
        result.error_message = str(e)

    finally:
        result.local = reconciler.local
        result.remote = reconciler.remote
        result.sync_duration = time.monotonic() - start_time

    logger.info(
        "Sync run completed",
        outcome=result.outcome.value,
        duration=f"{result.sync_duration:.2f}s"
    )

    return result


async def main() -> int:
    """Load settings, authorize, sync once and return the exit status."""
    setup_logging()

    logger = get_logger("main")
    settings = get_settings()
    logger.debug("Starting", name=settings.name, version=settings.version)

    try:
        sync_config = load_sync_config()
    except ConfigurationError as e:
        logger.error("Cannot load settings", error=str(e))
        return 1

    try:
        credentials = await authorize(sync_config.google)
    except OAuthError as e:
        logger.error("Authorization failed", error=str(e))
        return 1

    status_log = StatusLog(get_logger("gdrive_sync"))
    result = await run_sync(sync_config, credentials, log=status_log)
    status_log.flush()

    return result.exit_code


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nSync interrupted by user")
        sys.exit(130)


if __name__ == "__main__":
    run()
