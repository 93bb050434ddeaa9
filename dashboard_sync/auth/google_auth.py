"""
OAuth2 credential gateway for Google providers.

Provides OAuth 2.0 authentication with support for:
- Installed-app authorization flow for Tasks and Calendar scopes
- In-memory connection cache so connection checks need no I/O
- Token refresh ahead of expiry, serialized per provider
- Dropping a connection whose refresh token was revoked
"""

import json
import logging
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from dashboard_sync.errors import SyncError, SyncErrorKind, is_auth_error
from dashboard_sync.sync.retry import retry_with_backoff
from dashboard_sync.utils.paths import resolve_config_dir

# OAuth2 scopes required for Google Tasks and Calendar access
SCOPES = [
    "https://www.googleapis.com/auth/tasks",
    "https://www.googleapis.com/auth/calendar",
]

# OAuth connections this gateway can manage
GOOGLE = "google"
OAUTH_PROVIDERS = (GOOGLE,)

# Refresh tokens this many seconds before they expire
DEFAULT_REFRESH_MARGIN = 300

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when the interactive authorization flow fails."""

    pass


class GoogleAuth:
    """
    OAuth2 connection manager implementing the credential gateway.

    Attributes:
        config_dir: Directory for storing client secrets and tokens
        credentials_path: Path to OAuth client credentials file

    Usage:
        auth = GoogleAuth()

        # Connect interactively (opens a browser)
        auth.connect("google")

        # Later, from the sync engine
        if auth.is_connected("google"):
            token = auth.get_valid_access_token("google")
    """

    def __init__(
        self,
        config_dir: Path | None = None,
        refresh_margin: int = DEFAULT_REFRESH_MARGIN,
        max_refresh_attempts: int = 3,
        refresh_base_delay: float = 1.0,
    ):
        """
        Initialize the gateway and load stored connections.

        Args:
            config_dir: Directory for storing credentials and tokens.
                       Defaults to ~/.dashboard-sync/ or $DASHBOARD_SYNC_CONFIG_DIR
            refresh_margin: Seconds before expiry at which tokens are refreshed
            max_refresh_attempts: Attempts for transient refresh failures
            refresh_base_delay: First backoff delay for refresh retries
        """
        self.config_dir = resolve_config_dir(config_dir)
        self.credentials_path = self.config_dir / "credentials.json"
        self.refresh_margin = refresh_margin
        self.max_refresh_attempts = max_refresh_attempts
        self.refresh_base_delay = refresh_base_delay

        self._connections: dict[str, Credentials] = {}
        self._locks = {provider: threading.Lock() for provider in OAUTH_PROVIDERS}

        for provider in OAUTH_PROVIDERS:
            creds = self._load_credentials(provider)
            if creds is not None:
                self._connections[provider] = creds

    def _validate_provider(self, provider: str) -> None:
        if provider not in OAUTH_PROVIDERS:
            raise ValueError(
                f"Invalid provider '{provider}'. "
                f"Must be one of: {', '.join(OAUTH_PROVIDERS)}"
            )

    def _get_token_path(self, provider: str) -> Path:
        self._validate_provider(provider)
        return self.config_dir / f"token_{provider}.json"

    def _ensure_config_dir(self) -> None:
        """Create the configuration directory with 700 permissions if missing."""
        if not self.config_dir.exists():
            self.config_dir.mkdir(parents=True, mode=0o700)
            logger.debug(f"Created config directory: {self.config_dir}")

    def _load_credentials(self, provider: str) -> Credentials | None:
        """
        Load credentials from the provider's token file if it exists.

        Returns:
            Credentials object if token file exists and is valid, None otherwise
        """
        token_path = self._get_token_path(provider)

        if not token_path.exists():
            logger.debug(f"No token file found for {provider}")
            return None

        try:
            creds: Credentials = Credentials.from_authorized_user_file(
                str(token_path), SCOPES
            )
            logger.debug(f"Loaded credentials for {provider}")
            return creds
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Invalid token file for {provider}: {e}")
            return None

    def _save_credentials(self, provider: str, creds: Credentials) -> None:
        """Write credentials to the token file with 600 permissions."""
        self._ensure_config_dir()
        token_path = self._get_token_path(provider)
        token_path.write_text(creds.to_json())
        token_path.chmod(0o600)
        logger.debug(f"Saved credentials for {provider}")

    def _expires_soon(self, creds: Credentials) -> bool:
        """Check whether the token expires within the refresh margin."""
        if not creds.token:
            return True
        if creds.expiry is None:
            return False
        # google-auth stores expiry as naive UTC
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        return creds.expiry - timedelta(seconds=self.refresh_margin) <= now

    def _remove_connection(self, provider: str) -> None:
        self._connections.pop(provider, None)
        token_path = self._get_token_path(provider)
        if token_path.exists():
            token_path.unlink()

    # =========================================================================
    # Credential gateway
    # =========================================================================

    def is_connected(self, provider: str) -> bool:
        """Check cached connection state. Performs no I/O."""
        return provider in self._connections

    def get_valid_access_token(self, provider: str) -> str:
        """
        Get an access token valid for at least the refresh margin.

        Concurrent callers for the same provider share a single refresh.

        Raises:
            SyncError: AUTH_REQUIRED if not connected, AUTH_EXPIRED if the
                token could not be refreshed, or a retryable kind if the
                refresh failed for a transient reason
        """
        if provider not in self._locks:
            raise SyncError(
                SyncErrorKind.AUTH_REQUIRED, f"Unknown OAuth provider: {provider}"
            )

        with self._locks[provider]:
            creds = self._connections.get(provider)
            if creds is None:
                raise SyncError(
                    SyncErrorKind.AUTH_REQUIRED, f"Not connected to {provider}"
                )

            if not self._expires_soon(creds):
                return str(creds.token)

            if not creds.refresh_token:
                logger.warning(f"No refresh token for {provider}, disconnecting")
                self._remove_connection(provider)
                raise SyncError(
                    SyncErrorKind.AUTH_EXPIRED,
                    f"Session for {provider} expired and cannot be refreshed",
                )

            try:
                retry_with_backoff(
                    lambda: creds.refresh(Request()),
                    f"Refresh {provider} token",
                    max_attempts=self.max_refresh_attempts,
                    base_delay=self.refresh_base_delay,
                )
            except SyncError as e:
                if not is_auth_error(e):
                    raise
                logger.warning(f"Refresh rejected for {provider}, disconnecting: {e}")
                self._remove_connection(provider)
                raise SyncError(
                    SyncErrorKind.AUTH_EXPIRED,
                    f"Session for {provider} expired, please reconnect",
                    cause=e,
                ) from e

            self._save_credentials(provider, creds)
            logger.debug(f"Refreshed access token for {provider}")
            return str(creds.token)

    # =========================================================================
    # Connection management
    # =========================================================================

    def connect(self, provider: str = GOOGLE, force: bool = False) -> Credentials:
        """
        Connect a provider through the installed-app OAuth flow.

        Args:
            provider: OAuth provider name
            force: If True, run the flow even when already connected

        Raises:
            ValueError: If provider is unknown
            FileNotFoundError: If credentials.json is not found
            AuthenticationError: If authorization fails
        """
        self._validate_provider(provider)

        if not force and provider in self._connections:
            logger.info(f"Already connected to {provider}")
            return self._connections[provider]

        if not self.credentials_path.exists():
            raise FileNotFoundError(
                f"OAuth credentials file not found: {self.credentials_path}\n"
                "Please download your OAuth client credentials from "
                "Google Cloud Console and save them to this location."
            )

        logger.info(f"Starting OAuth flow for {provider}")

        try:
            flow = InstalledAppFlow.from_client_secrets_file(
                str(self.credentials_path), SCOPES
            )
            creds: Credentials = flow.run_local_server(port=0)
        except Exception as e:
            logger.error(f"Authentication failed for {provider}: {e}")
            raise AuthenticationError(f"Failed to connect {provider}: {e}") from e

        self._save_credentials(provider, creds)
        with self._locks[provider]:
            self._connections[provider] = creds
        logger.info(f"Connected {provider}")
        return creds

    def disconnect(self, provider: str) -> bool:
        """
        Forget a provider's connection and delete its token file.

        Returns:
            True if the provider was connected, False otherwise
        """
        self._validate_provider(provider)
        with self._locks[provider]:
            was_connected = provider in self._connections
            token_exists = self._get_token_path(provider).exists()
            self._remove_connection(provider)

        if was_connected or token_exists:
            logger.info(f"Disconnected {provider}")
            return True
        return False

    def get_status(self) -> dict[str, object]:
        """
        Get connection status for every OAuth provider.

        Returns:
            Dictionary keyed by provider with connection details, plus the
            client secrets location
        """
        status: dict[str, object] = {}

        for provider in OAUTH_PROVIDERS:
            creds = self._connections.get(provider)
            status[provider] = {
                "connected": creds is not None,
                "token_path": str(self._get_token_path(provider)),
                "expiry": creds.expiry.isoformat() if creds and creds.expiry else None,
                "refreshable": bool(creds and creds.refresh_token),
            }

        status["credentials_path"] = str(self.credentials_path)
        status["credentials_exist"] = self.credentials_path.exists()
        status["config_dir"] = str(self.config_dir)

        return status
