"""Centralized configuration and environment loading for the channel importer."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"

# Load environment variables from .env if present. Deployments that inject env
# vars directly keep working without the file.
try:
    if ENV_PATH.exists():
        load_dotenv(dotenv_path=ENV_PATH)
    else:
        load_dotenv()
except PermissionError:
    logger.warning(
        "Unable to read %s due to permissions. Using existing environment variables.",
        ENV_PATH,
    )


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() not in {"0", "false", "no", ""}


# --- Supabase (Postgres) ---
SUPABASE_URL = os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
STORE_PAGE_SIZE = int(os.getenv("STORE_PAGE_SIZE", "1000"))

# --- YouTube Data API ---
YOUTUBE_API_KEY = os.getenv("YOUTUBE_API_KEY")

# --- Supadata transcripts ---
SUPADATA_API_KEY = os.getenv("SUPADATA_API_KEY")
SUPADATA_BASE_URL = os.getenv("SUPADATA_BASE_URL", "https://api.supadata.ai/v1")
SUPADATA_TIMEOUT_SECONDS = float(os.getenv("SUPADATA_TIMEOUT_SECONDS", "60"))

# --- Cloudflare R2 (S3-compatible) ---
R2_ENDPOINT = os.getenv("R2_ENDPOINT")
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY")
R2_BUCKET_NAME = os.getenv("R2_BUCKET_NAME")
R2_PUBLIC_URL = os.getenv("R2_PUBLIC_URL") or os.getenv("NEXT_PUBLIC_R2_PUBLIC_URL") or ""
ASSET_DOWNLOAD_TIMEOUT_SECONDS = float(os.getenv("ASSET_DOWNLOAD_TIMEOUT_SECONDS", "30"))

# --- Gemini embeddings ---
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
EMBEDDINGS_ENABLED = _env_flag("EMBEDDINGS_ENABLED", "true")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "gemini-embedding-001")
# Matches the vector(1536) transcript column.
EMBEDDING_DIMENSIONS = int(os.getenv("EMBEDDING_DIMENSIONS", "1536"))
EMBEDDING_BATCH_SIZE = int(os.getenv("EMBEDDING_BATCH_SIZE", "100"))

# --- Mailgun notifications ---
MAILGUN_API_KEY = os.getenv("MAILGUN_API_KEY")
MAILGUN_DOMAIN = os.getenv("MAILGUN_DOMAIN", "mail.thought.app")
MAILGUN_BASE_URL = os.getenv("MAILGUN_BASE_URL", "https://api.mailgun.net")
NOTIFY_FROM_EMAIL = os.getenv("NOTIFY_FROM_EMAIL", "FV Notifications <notifications@mail.thought.app>")
NOTIFY_TO_EMAIL = os.getenv("NOTIFY_TO_EMAIL", "systems@reorbit.com")

# --- Import defaults ---
IMPORT_DEFAULT_LIMIT = int(os.getenv("IMPORT_DEFAULT_LIMIT", "50"))
IMPORT_MAX_LIMIT = int(os.getenv("IMPORT_MAX_LIMIT", "5000"))
SOURCE_SCAN_LIMIT = int(os.getenv("SOURCE_SCAN_LIMIT", "10000"))
TRANSCRIPT_BATCH_SIZE = int(os.getenv("TRANSCRIPT_BATCH_SIZE", "100"))

# --- Recent-videos (cron) import ---
RECENT_WINDOW_HOURS = int(os.getenv("RECENT_WINDOW_HOURS", "672"))
RECENT_SCAN_LIMIT = int(os.getenv("RECENT_SCAN_LIMIT", "100"))
RECENT_MAX_EXECUTION_SECONDS = float(os.getenv("RECENT_MAX_EXECUTION_SECONDS", "240"))

# --- Async transcript job poller ---
TRANSCRIPT_JOB_MIN_AGE_SECONDS = float(os.getenv("TRANSCRIPT_JOB_MIN_AGE_SECONDS", "10"))
TRANSCRIPT_JOB_BATCH = int(os.getenv("TRANSCRIPT_JOB_BATCH", "10"))

# --- HTTP server ---
SERVER_HOST = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT = int(os.getenv("SERVER_PORT", "8000"))
ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN", "")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
