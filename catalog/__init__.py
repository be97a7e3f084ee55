"""Factory helpers for the Supabase-backed catalog."""

from __future__ import annotations

from typing import Optional

from supabase import Client, create_client

from config.settings import SUPABASE_SERVICE_ROLE_KEY, SUPABASE_URL

from .jobs import ImportJobStore, JobConflictError
from .store import CatalogStore, TranscriptWriteError

_client: Optional[Client] = None
_store: Optional[CatalogStore] = None
_job_store: Optional[ImportJobStore] = None


def get_supabase_client() -> Client:
    global _client  # noqa: PLW0603
    if _client is None:
        if not SUPABASE_URL or not SUPABASE_SERVICE_ROLE_KEY:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set to use the catalog.")
        _client = create_client(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY)
    return _client


def get_catalog_store() -> CatalogStore:
    global _store  # noqa: PLW0603
    if _store is None:
        _store = CatalogStore(get_supabase_client())
    return _store


def get_job_store() -> ImportJobStore:
    global _job_store  # noqa: PLW0603
    if _job_store is None:
        _job_store = ImportJobStore(get_supabase_client())
    return _job_store


__all__ = [
    "CatalogStore",
    "ImportJobStore",
    "JobConflictError",
    "TranscriptWriteError",
    "get_catalog_store",
    "get_job_store",
    "get_supabase_client",
]
