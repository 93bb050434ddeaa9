"""
dashboard_sync.auth - Credential gateway

OAuth connection management and access token supply for providers.
"""

from dashboard_sync.auth.gateway import CredentialGateway
from dashboard_sync.auth.google_auth import (
    GOOGLE,
    OAUTH_PROVIDERS,
    SCOPES,
    AuthenticationError,
    GoogleAuth,
)

__all__ = [
    "CredentialGateway",
    "GoogleAuth",
    "AuthenticationError",
    "GOOGLE",
    "OAUTH_PROVIDERS",
    "SCOPES",
]
