"""YouTube Data API client utilities."""

from __future__ import annotations

import errno
import logging
import time
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from googleapiclient.discovery import build

from config.settings import YOUTUBE_API_KEY

logger = logging.getLogger(__name__)

_youtube_service = None


def get_youtube_service():
    """Create or reuse a YouTube Data API service client."""
    global _youtube_service  # noqa: PLW0603
    if _youtube_service is None:
        if not YOUTUBE_API_KEY:
            raise ValueError("YOUTUBE_API_KEY must be set to list channel videos.")
        _youtube_service = build(
            "youtube",
            "v3",
            developerKey=YOUTUBE_API_KEY,
            cache_discovery=False,
        )
    return _youtube_service


def execute_request(request, *, retries: int = 1, label: str = "request"):
    """
    Execute a Google API request with basic retries.

    Timeouts and `EADDRNOTAVAIL` socket errors (local port pool momentarily
    exhausted during long channel scans) are retried with a short backoff;
    everything else is raised to the caller.
    """
    last_exc: Optional[Exception] = None
    attempts = max(0, retries) + 1
    for attempt in range(1, attempts + 1):
        try:
            return request.execute(num_retries=0)
        except TimeoutError as exc:
            last_exc = exc
            if attempt < attempts:
                logger.warning(
                    "YouTube API %s timeout (attempt %s/%s), retrying...",
                    label,
                    attempt,
                    attempts,
                )
                continue
            raise
        except OSError as exc:
            last_exc = exc
            is_addr_unavailable = getattr(exc, "errno", None) == errno.EADDRNOTAVAIL
            if is_addr_unavailable and attempt < attempts:
                backoff = 0.5 * attempt
                logger.warning(
                    "YouTube API %s socket error (%s) attempt %s/%s, retrying in %.1fs",
                    label,
                    exc,
                    attempt,
                    attempts,
                    backoff,
                )
                time.sleep(backoff)
                continue
            raise
    if last_exc:
        raise last_exc
    raise RuntimeError("Failed to execute request for unknown reasons.")


def redact_request_uri(request) -> Optional[str]:
    """Return a sanitized request URI without the API key."""
    try:
        uri = getattr(request, "uri", None)
        if not uri:
            return None
        parts = urlsplit(uri)
        filtered_query = [
            (k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "key"
        ]
        return urlunsplit(
            (parts.scheme, parts.netloc, parts.path, urlencode(filtered_query), parts.fragment)
        )
    except Exception as exc:  # noqa: BLE001
        logger.debug("Failed to redact request URI: %s", exc)
        return None


def uploads_playlist_id(channel_id: str) -> Optional[str]:
    """Derive the uploads playlist: UCxxxx -> UUxxxx."""
    if not channel_id or not channel_id.startswith("UC") or len(channel_id) < 3:
        return None
    return f"UU{channel_id[2:]}"


__all__ = [
    "get_youtube_service",
    "execute_request",
    "redact_request_uri",
    "uploads_playlist_id",
]
