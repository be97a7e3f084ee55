"""Lifecycle of background channel import jobs and their audit log."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .models import ImportJobRecord, ImportLogRecord
from .store import utc_now_iso

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ["pending", "running"]


class JobConflictError(Exception):
    """Raised when a channel already has a pending or running import job."""

    def __init__(self, job_id: str):
        super().__init__(f"Import already in progress for this channel (job {job_id})")
        self.job_id = job_id


class ImportJobStore:
    """Reads and writes `channel_import_jobs` and `channel_import_logs`."""

    def __init__(self, client):
        self._client = client

    def _jobs(self):
        return self._client.table("channel_import_jobs")

    def active_job(self, channel_id: str) -> Optional[ImportJobRecord]:
        rows = (
            self._jobs()
            .select("*")
            .eq("channel_id", channel_id)
            .in_("status", ACTIVE_STATUSES)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
            .data
            or []
        )
        return ImportJobRecord(**rows[0]) if rows else None

    def create_job(
        self,
        channel_id: str,
        *,
        video_limit: int,
        include_live_videos: bool = False,
        skip_transcripts: bool = False,
    ) -> ImportJobRecord:
        existing = self.active_job(channel_id)
        if existing:
            raise JobConflictError(existing.id)
        rows = (
            self._jobs()
            .insert(
                {
                    "channel_id": channel_id,
                    "status": "pending",
                    "video_limit": video_limit,
                    "include_live_videos": include_live_videos,
                    "skip_transcripts": skip_transcripts,
                    "progress": {"message": "Initializing..."},
                }
            )
            .execute()
            .data
            or []
        )
        if not rows:
            raise RuntimeError(f"Failed to create import job for channel {channel_id}")
        job = ImportJobRecord(**rows[0])
        logger.info("Created import job %s for channel %s", job.id, channel_id)
        return job

    def get_job(self, job_id: str) -> Optional[ImportJobRecord]:
        rows = self._jobs().select("*").eq("id", job_id).limit(1).execute().data or []
        return ImportJobRecord(**rows[0]) if rows else None

    def latest_job(self, channel_id: str) -> Optional[ImportJobRecord]:
        rows = (
            self._jobs()
            .select("*")
            .eq("channel_id", channel_id)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
            .data
            or []
        )
        return ImportJobRecord(**rows[0]) if rows else None

    def update_job(self, job_id: str, changes: Dict[str, Any]) -> None:
        if changes:
            self._jobs().update(changes).eq("id", job_id).execute()

    def mark_running(self, job_id: str) -> None:
        self.update_job(
            job_id,
            {"status": "running", "started_at": utc_now_iso(), "progress": {"message": "Starting import..."}},
        )

    def mark_completed(self, job_id: str, message: str = "Import completed") -> None:
        self.update_job(
            job_id,
            {
                "status": "completed",
                "completed_at": utc_now_iso(),
                "current_video_title": None,
                "progress": {"message": message},
            },
        )

    def mark_failed(self, job_id: str, error_message: str) -> None:
        self.update_job(
            job_id,
            {"status": "failed", "error_message": error_message, "completed_at": utc_now_iso()},
        )

    def cancel(self, channel_id: str) -> Optional[str]:
        """Mark the active job failed. The running import itself is not interrupted."""
        job = self.active_job(channel_id)
        if not job:
            return None
        self.mark_failed(job.id, "Cancelled by user")
        logger.info("Cancelled import job %s for channel %s", job.id, channel_id)
        return job.id

    def append_log(self, entry: ImportLogRecord) -> None:
        self._client.table("channel_import_logs").insert(entry.model_dump()).execute()

    def job_logs(self, job_id: str) -> List[Dict[str, Any]]:
        return (
            self._client.table("channel_import_logs")
            .select("*")
            .eq("job_id", job_id)
            .order("created_at", desc=True)
            .execute()
            .data
            or []
        )


__all__ = ["ImportJobStore", "JobConflictError", "ACTIVE_STATUSES"]
