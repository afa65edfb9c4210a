"""
OAuth Handler for Google installed-application authorization.

This module handles the user consent flow for Google Drive, including
authorization, token exchange, token refresh and token storage, and turns
the stored tokens into google-auth credentials.
"""

import asyncio
import json
import os
import secrets
import time
import urllib.parse
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import aiohttp
from aiohttp import web
import structlog
from google.oauth2.credentials import Credentials

from ..config.schema import GoogleClientConfig
from ..config.settings import get_settings

logger = structlog.get_logger(__name__)

LOOPBACK_HOSTS = ("localhost", "127.0.0.1", "::1")

# Tokens closer than this to expiry are refreshed before use
EXPIRY_MARGIN_SECONDS = 300


class OAuthError(Exception):
    """Raised when the authorization flow or a token request fails."""
    pass


class GoogleOAuthHandler:
    """Handles the installed-application OAuth flow for Google Drive."""

    def __init__(
        self,
        client_config: GoogleClientConfig,
        token_storage_path: Optional[Union[str, Path]] = None,
        scopes: Optional[list] = None
    ):
        settings = get_settings()
        self.client_config = client_config
        self.scopes = scopes or list(settings.google_drive.scopes)
        self.token_storage_path = Path(token_storage_path or settings.token_path).expanduser()

        self.redirect_uri = client_config.redirect_uri

        # Session management
        self.session: Optional[aiohttp.ClientSession] = None
        self.oauth_state = None
        self.server_runner = None
        self._tokens_received: Optional[asyncio.Event] = None

    async def __aenter__(self):
        """Async context manager entry."""
        if not self.session:
            self.session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.stop_oauth_server()
        if self.session:
            await self.session.close()
            self.session = None

    @property
    def uses_loopback(self) -> bool:
        """Whether the redirect URI points back at this machine."""
        host = urllib.parse.urlparse(self.client_config.redirect_uri).hostname
        return host in LOOPBACK_HOSTS

    def loopback_redirect_uri(self, port: int) -> Tuple[str, int, str]:
        """Return (redirect_uri, port, callback_path) for the loopback flow.

        A registered URI without a port (``http://localhost``) accepts any
        port, so the callback server's port is added to it.
        """
        parsed = urllib.parse.urlparse(self.client_config.redirect_uri)
        port = parsed.port or port
        path = parsed.path or "/"
        host = parsed.hostname
        netloc = f"[{host}]:{port}" if ":" in host else f"{host}:{port}"
        return urllib.parse.urlunparse((parsed.scheme, netloc, path, "", "", "")), port, path

    def get_authorization_url(self) -> Tuple[str, str]:
        """
        Generate the authorization URL for the user to visit.

        Returns:
            Tuple of (authorization_url, state) where state should be stored
            to validate the callback.
        """
        self.oauth_state = secrets.token_urlsafe(32)

        params = {
            "response_type": "code",
            "client_id": self.client_config.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": self.oauth_state,
            # A refresh token is only issued for offline access with fresh consent
            "access_type": "offline",
            "prompt": "consent"
        }

        auth_url = f"{self.client_config.auth_uri}?{urllib.parse.urlencode(params)}"

        logger.info(
            "Generated authorization URL",
            client_id=self.client_config.client_id[:8] + "...",
            scopes=self.scopes,
            redirect_uri=self.redirect_uri
        )

        return auth_url, self.oauth_state

    async def exchange_code_for_token(self, authorization_code: str) -> Dict:
        """
        Exchange authorization code for access and refresh tokens.

        Args:
            authorization_code: The code received from the callback

        Returns:
            Dictionary containing token information
        """
        data = {
            "grant_type": "authorization_code",
            "code": authorization_code,
            "client_id": self.client_config.client_id,
            "client_secret": self.client_config.client_secret,
            "redirect_uri": self.redirect_uri
        }

        logger.info("Exchanging authorization code for tokens")

        token_data = await self._request_token(data)
        token_data["obtained_at"] = datetime.now().isoformat()

        await self.save_tokens(token_data)

        logger.info(
            "Successfully obtained tokens",
            expires_in=token_data.get("expires_in"),
            scopes=token_data.get("scope", "unknown")
        )

        return token_data

    async def refresh_access_token(self, refresh_token: str) -> Dict:
        """
        Refresh the access token using the refresh token.

        Args:
            refresh_token: The refresh token

        Returns:
            Dictionary containing new token information
        """
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_config.client_id,
            "client_secret": self.client_config.client_secret
        }

        logger.info("Refreshing access token")

        token_data = await self._request_token(data)
        token_data["refreshed_at"] = datetime.now().isoformat()

        # Google does not repeat the refresh token on refresh
        if "refresh_token" not in token_data:
            token_data["refresh_token"] = refresh_token

        await self.save_tokens(token_data)

        logger.info("Successfully refreshed token", expires_in=token_data.get("expires_in"))

        return token_data

    async def _request_token(self, data: Dict) -> Dict:
        """POST a form to the token endpoint and return the decoded token."""
        if not self.session:
            self.session = aiohttp.ClientSession()

        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        try:
            async with self.session.post(
                self.client_config.token_uri,
                headers=headers,
                data=data
            ) as response:
                response_text = await response.text()

                if response.status != 200:
                    logger.error(
                        "Token request failed",
                        grant_type=data["grant_type"],
                        status=response.status,
                        response=response_text
                    )
                    raise OAuthError(f"Token request failed: {response.status} - {response_text}")

                try:
                    token_data = json.loads(response_text)
                except json.JSONDecodeError as e:
                    raise OAuthError(f"Token endpoint returned invalid JSON: {e}") from e
                if not isinstance(token_data, dict):
                    raise OAuthError("Token endpoint returned an unexpected response")

        except aiohttp.ClientError as e:
            logger.error("Error during token request", grant_type=data["grant_type"], error=str(e))
            raise OAuthError(f"Token request failed: {e}") from e

        token_data["expires_at"] = int(time.time()) + int(token_data.get("expires_in", 3600))
        return token_data

    async def get_valid_tokens(self) -> Optional[Dict]:
        """Load stored tokens, refreshing them when they are about to expire."""
        tokens = await self.load_tokens()

        if not tokens or not tokens.get("access_token"):
            logger.info("No tokens found, authentication required")
            return None

        current_time = int(time.time())
        expires_at = tokens.get("expires_at", 0)

        if current_time < (expires_at - EXPIRY_MARGIN_SECONDS):
            logger.debug("Using existing valid token")
            return tokens

        refresh_token = tokens.get("refresh_token")
        if not refresh_token:
            logger.warning("No refresh token available, re-authentication required")
            return None

        try:
            return await self.refresh_access_token(refresh_token)
        except OAuthError as e:
            logger.error("Failed to refresh token, re-authentication required", error=str(e))
            return None

    async def save_tokens(self, token_data: Dict) -> None:
        """Save tokens to a file readable only by the current user."""
        try:
            self.token_storage_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.token_storage_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as f:
                json.dump(token_data, f, indent=2)
        except OSError as e:
            logger.error("Failed to save tokens", path=str(self.token_storage_path), error=str(e))
            raise OAuthError(f"Cannot write token file {self.token_storage_path}: {e}") from e
        logger.debug("Tokens saved successfully", path=str(self.token_storage_path))

        if self._tokens_received is not None:
            self._tokens_received.set()

    async def load_tokens(self) -> Optional[Dict]:
        """Load tokens from file."""
        try:
            if self.token_storage_path.exists():
                with open(self.token_storage_path, 'r') as f:
                    tokens = json.load(f)
                logger.debug("Tokens loaded successfully")
                return tokens if isinstance(tokens, dict) else None
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to load tokens", error=str(e))
            return None

    async def start_oauth_server(self, port: int) -> str:
        """
        Start a temporary web server to handle the OAuth callback.

        Args:
            port: Port to run the server on when the redirect URI names none

        Returns:
            The authorization URL for the user to visit
        """
        self.redirect_uri, port, callback_path = self.loopback_redirect_uri(port)
        auth_url, state = self.get_authorization_url()
        self._tokens_received = asyncio.Event()

        async def oauth_callback(request):
            """Handle the OAuth callback."""
            code = request.query.get('code')
            returned_state = request.query.get('state')
            error = request.query.get('error')

            if error:
                logger.error("OAuth error received", error=error)
                return self._html_response("Authorization Failed", f"Error: {error}", status=400)

            if not code:
                logger.error("No authorization code received")
                return self._html_response("Authorization Failed", "No authorization code received", status=400)

            if returned_state != self.oauth_state:
                logger.error("State mismatch in OAuth callback")
                return self._html_response("Authorization Failed", "State mismatch", status=400)

            try:
                await self.exchange_code_for_token(code)
            except OAuthError as e:
                logger.error("Failed to exchange code for tokens", error=str(e))
                return self._html_response("Authorization Failed", f"Token exchange failed: {e}", status=500)

            return self._html_response(
                "Authorization Successful",
                "You can now close this window and return to the application."
            )

        app = web.Application()
        app.router.add_get(callback_path, oauth_callback)

        self.server_runner = web.AppRunner(app)
        await self.server_runner.setup()

        host = urllib.parse.urlparse(self.redirect_uri).hostname
        site = web.TCPSite(self.server_runner, host, port)
        try:
            await site.start()
        except OSError as e:
            await self.stop_oauth_server()
            raise OAuthError(f"Cannot start OAuth callback server on {host}:{port}: {e}") from e

        logger.info("OAuth callback server started", port=port, path=callback_path)

        return auth_url

    async def stop_oauth_server(self):
        """Stop the OAuth server."""
        if self.server_runner:
            await self.server_runner.cleanup()
            self.server_runner = None
            logger.info("OAuth callback server stopped")

    @staticmethod
    def _html_response(title: str, message: str, status: int = 200) -> web.Response:
        return web.Response(
            text=f"<html><body><h1>{title}</h1><p>{message}</p></body></html>",
            content_type='text/html',
            status=status
        )

    async def authenticate_user(self, port: Optional[int] = None, timeout: Optional[int] = None) -> Dict:
        """
        Complete user authorization flow.

        A local callback server receives the code, so the redirect URI must
        point at this machine. Google has retired the out-of-band flow in
        which the user pasted the code back, so other redirect URIs are
        rejected.

        Args:
            port: Port to run the callback server on
            timeout: Timeout in seconds to wait for user authorization

        Returns:
            Token data dictionary
        """
        settings = get_settings().google_drive
        port = port or settings.oauth_callback_port
        timeout = timeout or settings.oauth_timeout_seconds

        logger.info("Starting user authorization flow")

        existing = await self.get_valid_tokens()
        if existing:
            logger.info("Using existing valid tokens")
            return existing

        if not self.uses_loopback:
            raise OAuthError(
                f"Redirect URI {self.client_config.redirect_uri} is not a loopback address; "
                "register an installed-app client with http://localhost as its redirect URI"
            )

        auth_url = await self.start_oauth_server(port)
        self._print_banner(auth_url, timeout=timeout)

        try:
            await asyncio.wait_for(self._tokens_received.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            raise OAuthError(f"Authorization timed out after {timeout} seconds")
        finally:
            await self.stop_oauth_server()

        tokens = await self.load_tokens()
        if not tokens or not tokens.get("access_token"):
            raise OAuthError("Authorization finished without storing tokens")

        logger.info("Authorization completed successfully")
        return tokens

    @staticmethod
    def _print_banner(auth_url: str, timeout: Optional[int] = None) -> None:
        print(f"\n{'='*60}")
        print("GOOGLE DRIVE AUTHORIZATION REQUIRED")
        print(f"{'='*60}")
        print("Authorize this app by visiting this url:")
        print(f"\n{auth_url}\n")
        if timeout:
            print(f"Waiting for authorization... (timeout: {timeout} seconds)")
        print(f"{'='*60}\n")

    def build_credentials(self, tokens: Dict) -> Credentials:
        """Turn stored token data into google-auth credentials."""
        expiry = None
        if tokens.get("expires_at"):
            # google-auth compares expiry as naive UTC
            expiry = datetime.fromtimestamp(tokens["expires_at"], tz=timezone.utc).replace(tzinfo=None)

        return Credentials(
            token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token"),
            token_uri=self.client_config.token_uri,
            client_id=self.client_config.client_id,
            client_secret=self.client_config.client_secret,
            scopes=self.scopes,
            expiry=expiry
        )


# Utility functions for easy integration

async def authorize(
    client_config: GoogleClientConfig,
    token_storage_path: Optional[Union[str, Path]] = None,
    scopes: Optional[list] = None,
    force_reauth: bool = False
) -> Credentials:
    """
    Get authorized Google credentials, running the consent flow as needed.

    Args:
        client_config: OAuth client credentials from the settings file
        token_storage_path: Where tokens are stored between runs
        scopes: List of required scopes
        force_reauth: Discard stored tokens and ask for consent again

    Returns:
        Credentials usable by the Drive client
    """
    async with GoogleOAuthHandler(
        client_config=client_config,
        token_storage_path=token_storage_path,
        scopes=scopes
    ) as oauth_handler:

        if force_reauth and oauth_handler.token_storage_path.exists():
            try:
                oauth_handler.token_storage_path.unlink()
            except OSError as e:
                raise OAuthError(f"Cannot remove token file {oauth_handler.token_storage_path}: {e}") from e

        tokens = await oauth_handler.get_valid_tokens()
        if not tokens:
            tokens = await oauth_handler.authenticate_user()

        return oauth_handler.build_credentials(tokens)
