"""Authorization module for the file synchronizer."""

from .oauth_handler import GoogleOAuthHandler, OAuthError, authorize

__all__ = ["GoogleOAuthHandler", "OAuthError", "authorize"]
