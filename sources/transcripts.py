"""Transcript retrieval through the Supadata REST API."""

from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, Iterable, List, Optional

import requests
from pydantic import BaseModel, Field

from config.settings import SUPADATA_API_KEY, SUPADATA_BASE_URL, SUPADATA_TIMEOUT_SECONDS

from .models import TranscriptSegment

logger = logging.getLogger(__name__)

JobRecorder = Callable[[str, str], None]


class TranscriptServiceError(Exception):
    """Raised when the transcript API answers with a non-2xx status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"Transcript API returned {status_code}: {message}")
        self.status_code = status_code


class TranscriptJobStatus(BaseModel):
    """State of an asynchronous transcript job on the provider side."""

    status: str = Field(default="pending", description="pending | processing | completed | failed")
    segments: List[TranscriptSegment] = Field(default_factory=list)
    raw_segment_count: int = Field(default=0)
    error: Optional[str] = Field(default=None)


def _finite_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def normalize_segments(items: Optional[Iterable[Dict[str, Any]]]) -> List[TranscriptSegment]:
    """Drop blank or badly timed items and convert millisecond timings to seconds."""
    segments: List[TranscriptSegment] = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        text = (item.get("text") or "").strip() if isinstance(item.get("text"), str) else ""
        offset = _finite_number(item.get("offset"))
        duration = _finite_number(item.get("duration"))
        if not text or offset is None or duration is None:
            continue
        segments.append(
            TranscriptSegment(text=text, start_time=offset / 1000, duration=duration / 1000)
        )
    return segments


class SupadataTranscriptClient:
    """Fetches timed transcripts; async provider jobs are recorded for later polling."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        base_url: str = SUPADATA_BASE_URL,
        session: Optional[requests.Session] = None,
        job_recorder: Optional[JobRecorder] = None,
        timeout: float = SUPADATA_TIMEOUT_SECONDS,
    ):
        self._api_key = api_key if api_key is not None else SUPADATA_API_KEY
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._job_recorder = job_recorder
        self._timeout = timeout

    def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> requests.Response:
        return self._session.get(
            f"{self._base_url}/{path.lstrip('/')}",
            params=params,
            headers={"x-api-key": self._api_key or "", "Content-Type": "application/json"},
            timeout=self._timeout,
        )

    def fetch_transcript(
        self,
        video_id: str,
        prefer_native: bool = False,
        job_recorder: Optional[JobRecorder] = None,
    ) -> Optional[List[TranscriptSegment]]:
        """
        Return the transcript segments for a YouTube video, or None.

        None covers every "no transcript right now" outcome: missing key,
        provider error, empty result, or an async job that was recorded via
        the job recorder instead of being awaited.
        """
        if not self._api_key:
            logger.error("SUPADATA_API_KEY not set; cannot fetch transcript for %s", video_id)
            return None

        params = {
            "url": f"https://www.youtube.com/watch?v={video_id}",
            "mode": "native" if prefer_native else "auto",
        }
        try:
            response = self._get("transcript", params=params)
        except requests.RequestException as exc:
            logger.warning("Transcript request failed for %s: %s", video_id, exc)
            return None

        if not response.ok:
            logger.warning(
                "Transcript API returned %s for %s: %s",
                response.status_code,
                video_id,
                response.text[:200],
            )
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("Transcript API returned invalid JSON for %s", video_id)
            return None

        if data.get("error"):
            logger.warning("Transcript API error for %s: %s", video_id, data["error"])
            return None

        raw_segments = data.get("content") or data.get("segments")
        job_id = data.get("jobId")
        if job_id and not raw_segments:
            recorder = job_recorder or self._job_recorder
            logger.info("Transcript for %s is being generated asynchronously (job %s)", video_id, job_id)
            if recorder:
                try:
                    recorder(job_id, video_id)
                except Exception:  # noqa: BLE001
                    logger.exception("Failed to record transcript job %s for %s", job_id, video_id)
            return None

        if not raw_segments or not isinstance(raw_segments, list):
            logger.info("No transcript segments returned for %s", video_id)
            return None

        segments = normalize_segments(raw_segments)
        if not segments:
            logger.info("All %s transcript segments for %s were invalid", len(raw_segments), video_id)
            return None
        logger.info(
            "Fetched %s transcript segments for %s (filtered from %s)",
            len(segments),
            video_id,
            len(raw_segments),
        )
        return segments

    def get_job(self, job_id: str) -> TranscriptJobStatus:
        """Poll an async transcript job. Raises TranscriptServiceError on non-2xx."""
        response = self._get(f"transcript/{job_id}")
        if not response.ok:
            raise TranscriptServiceError(response.status_code, response.text[:200])
        data = response.json()
        raw_segments = data.get("content") or data.get("segments") or []
        return TranscriptJobStatus(
            status=data.get("status", "pending"),
            segments=normalize_segments(raw_segments),
            raw_segment_count=len(raw_segments),
            error=data.get("error"),
        )


__all__ = [
    "SupadataTranscriptClient",
    "TranscriptJobStatus",
    "TranscriptServiceError",
    "normalize_segments",
    "JobRecorder",
]
