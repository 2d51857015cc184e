"""Infrastructure layer exports."""

from .credentials import CredentialStore, configure_api_key, get_credential_store
from .pathtrack_client import DEFAULT_API_BASE, DEFAULT_MODEL, PathTrackClient
from .reference_cache import ReferenceCache, ReferenceSnapshot, build_snapshot

__all__ = [
    "CredentialStore",
    "DEFAULT_API_BASE",
    "DEFAULT_MODEL",
    "PathTrackClient",
    "ReferenceCache",
    "ReferenceSnapshot",
    "build_snapshot",
    "configure_api_key",
    "get_credential_store",
]
