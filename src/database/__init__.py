"""
Street Legacy Storage and Credentials.

Durable key-value stores for client state and bearer-token providers,
including the Supabase auth session.
"""

from src.database.client import get_supabase_client
from src.database.credentials import (
    AUTH_STORAGE_KEY,
    CredentialProvider,
    StaticCredentials,
    StoredCredentials,
    SupabaseCredentials,
)
from src.database.storage import FileStore, KeyValueStore, MemoryStore

__all__ = [
    "AUTH_STORAGE_KEY",
    "CredentialProvider",
    "FileStore",
    "KeyValueStore",
    "MemoryStore",
    "StaticCredentials",
    "StoredCredentials",
    "SupabaseCredentials",
    "get_supabase_client",
]
