"""
Storage provider implementations.
"""

from db.backends.firebase import FirebaseBackend
from db.backends.local import LocalBackend
from db.backends.postgres import PostgresBackend
from db.backends.supabase import SupabaseBackend

__all__ = ["LocalBackend", "PostgresBackend", "FirebaseBackend", "SupabaseBackend"]
