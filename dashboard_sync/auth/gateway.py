"""
Credential gateway interface consumed by the sync engine.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class CredentialGateway(Protocol):
    """
    Source of access tokens for OAuth providers.

    is_connected must answer from cached state without any I/O.
    get_valid_access_token returns a token that is valid right now,
    refreshing it if needed, and raises a SyncError of kind AUTH_REQUIRED
    or AUTH_EXPIRED when no valid token can be produced.
    """

    def is_connected(self, provider: str) -> bool: ...

    def get_valid_access_token(self, provider: str) -> str: ...
