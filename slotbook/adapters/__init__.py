"""
Adapters layer - External integrations (hosted record store and auth service).
"""

from .memory_store import InMemoryRecordStore, MockAuthenticator
from .session import CustomerSession
from .supabase_authenticator import SupabaseAuthenticator
from .supabase_store import SupabaseRecordStore

__all__ = [
    "CustomerSession",
    "InMemoryRecordStore",
    "MockAuthenticator",
    "SupabaseAuthenticator",
    "SupabaseRecordStore",
]
