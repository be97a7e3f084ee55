"""Reconciles asynchronous transcript jobs recorded during imports."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from catalog.models import TranscriptJobRecord
from catalog.store import CatalogStore, TranscriptWriteError, utc_now_iso
from config.settings import TRANSCRIPT_JOB_BATCH, TRANSCRIPT_JOB_MIN_AGE_SECONDS
from sources.transcripts import SupadataTranscriptClient, TranscriptServiceError

from .transcript_quality import QualityPolicy, is_quality_transcript

logger = logging.getLogger(__name__)


class TranscriptJobProcessor:
    """Polls pending provider jobs and stores the transcripts of the finished ones."""

    def __init__(
        self,
        store: CatalogStore,
        transcripts: SupadataTranscriptClient,
        *,
        quality_policy: Optional[QualityPolicy] = None,
        min_age_seconds: float = TRANSCRIPT_JOB_MIN_AGE_SECONDS,
        batch_size: int = TRANSCRIPT_JOB_BATCH,
    ):
        self._store = store
        self._transcripts = transcripts
        self._quality_policy = quality_policy
        self._min_age_seconds = min_age_seconds
        self._batch_size = batch_size

    def process_pending(self) -> Dict[str, int]:
        jobs = self._store.pending_transcript_jobs(
            min_age_seconds=self._min_age_seconds, limit=self._batch_size
        )
        counts = {"total_processed": len(jobs), "completed": 0, "failed": 0, "still_processing": 0}
        if not jobs:
            logger.info("No pending transcript jobs")
            return counts

        completed_ids: List[str] = []
        for job in jobs:
            try:
                outcome = self._process_job(job)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Error processing transcript job %s", job.job_id)
                self._fail(job, f"Processing error: {exc}")
                outcome = "failed"
            if outcome == "completed":
                completed_ids.append(job.video_id)
            counts[outcome] += 1

        if completed_ids:
            try:
                self._store.refresh_search_index(completed_ids)
            except Exception as exc:  # noqa: BLE001
                logger.error("Search index refresh after transcript jobs failed: %s", exc)
        logger.info("Transcript jobs processed: %s", counts)
        return counts

    def _fail(self, job: TranscriptJobRecord, message: str) -> None:
        self._store.update_transcript_job(
            job.id, {"status": "failed", "error_message": message, "completed_at": utc_now_iso()}
        )

    def _process_job(self, job: TranscriptJobRecord) -> str:
        try:
            status = self._transcripts.get_job(job.job_id)
        except TranscriptServiceError as exc:
            if 400 <= exc.status_code < 500:
                self._fail(job, f"API returned {exc.status_code}")
                return "failed"
            logger.warning("Transcript job %s status check failed: %s", job.job_id, exc)
            return "still_processing"

        if status.status == "failed":
            self._fail(job, status.error or "Job failed")
            return "failed"
        if status.status != "completed":
            self._store.update_transcript_job(job.id, {"status": "processing"})
            return "still_processing"

        if not status.raw_segment_count:
            self._fail(job, "No segments in completed job")
            return "failed"
        if not status.segments:
            self._fail(job, "No valid segments after filtering")
            return "failed"

        if not job.video_id and job.youtube_video_id:
            video = self._store.find_video_by_youtube_id(job.youtube_video_id)
            job.video_id = video["id"] if video else None
        if not job.video_id:
            self._fail(job, "Video not found in catalog")
            return "failed"

        try:
            self._store.replace_transcript(job.video_id, status.segments)
        except TranscriptWriteError as exc:
            self._fail(job, f"Database insert failed: {exc}")
            return "failed"
        quality = is_quality_transcript(status.segments, self._quality_policy)
        self._store.set_transcript_flags(job.video_id, has_transcript=True, has_quality_transcript=quality)
        self._store.update_transcript_job(job.id, {"status": "completed", "completed_at": utc_now_iso()})
        logger.info("Stored %s segments from transcript job %s", len(status.segments), job.job_id)
        return "completed"


__all__ = ["TranscriptJobProcessor"]
