"""Remote domain - persisted tracks and authentication.

This domain handles:
- The RemoteStore contract shared by session, library and upload code
- Typed backend errors with permission/configuration classification
- The Supabase REST implementation
"""

from .base import Identity, RemoteStore, TrackRecord
from .errors import (
    AuthError,
    FetchError,
    RecordError,
    RemoteError,
    StorageError,
)
from .supabase import SupabaseRemoteStore

__all__ = [
    "Identity",
    "RemoteStore",
    "TrackRecord",
    "AuthError",
    "FetchError",
    "RecordError",
    "RemoteError",
    "StorageError",
    "SupabaseRemoteStore",
]
