"""
Services Module

Domain operations and clients for external collaborators:
- accounts: login, registration, token validation, profile, deletion
- avatars: avatar upload/removal linked to the identity record
- blob_store: object storage interface (Supabase Storage REST)
- turnstile: Cloudflare Turnstile anti-automation verification
"""
from .blob_store import (
    BlobStore,
    BlobStoreError,
    CleanupResult,
    StoredObject,
    SupabaseBlobStore,
    best_effort_cleanup,
)
from .turnstile import TurnstileVerifier

__all__ = [
    "BlobStore",
    "BlobStoreError",
    "CleanupResult",
    "StoredObject",
    "SupabaseBlobStore",
    "best_effort_cleanup",
    "TurnstileVerifier",
]
