"""Row models for the Supabase tables touched by the import pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

JobStatus = Literal["pending", "running", "completed", "failed"]
ImportAction = Literal["video_imported", "transcript_downloaded", "transcript_skipped"]
TranscriptJobStatus = Literal["pending", "processing", "completed", "failed"]


class ChannelRecord(BaseModel):
    """A row of the `channels` table."""

    model_config = ConfigDict(extra="ignore")

    id: str
    channel_handle: Optional[str] = Field(default=None, description="Subdomain-safe local handle.")
    youtube_channel_id: Optional[str] = Field(default=None)
    youtube_channel_handle: Optional[str] = Field(default=None)
    channel_name: Optional[str] = Field(default=None)
    channel_description: Optional[str] = Field(default=None)
    thumbnail_url: Optional[str] = Field(default=None)
    banner_url: Optional[str] = Field(default=None)
    subscriber_count: Optional[int] = Field(default=None)
    video_count: Optional[int] = Field(default=None)
    tenant_id: Optional[str] = Field(default=None)
    is_active: Optional[bool] = Field(default=None)
    is_music_channel: bool = Field(default=False)
    last_synced_at: Optional[datetime] = Field(default=None)

    def display_name(self) -> str:
        return self.channel_name or self.youtube_channel_handle or self.channel_handle or self.id


class ImportJobRecord(BaseModel):
    """A row of `channel_import_jobs`, polled by the admin UI."""

    model_config = ConfigDict(extra="ignore")

    id: str
    channel_id: Optional[str] = None
    status: JobStatus = "pending"
    progress: Dict[str, Any] = Field(default_factory=dict)
    video_limit: Optional[int] = None
    include_live_videos: bool = False
    skip_transcripts: bool = False
    videos_total: int = 0
    videos_processed: int = 0
    transcripts_downloaded: int = 0
    embeddings_generated: int = 0
    current_video_title: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def as_status_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "progress": self.progress,
            "videosProcessed": self.videos_processed,
            "videosTotal": self.videos_total,
            "currentVideoTitle": self.current_video_title,
            "transcriptsDownloaded": self.transcripts_downloaded,
            "embeddingsGenerated": self.embeddings_generated,
            "errorMessage": self.error_message,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }


class ImportLogRecord(BaseModel):
    """A row of `channel_import_logs`; one audit entry per action per video."""

    model_config = ConfigDict(extra="ignore")

    job_id: str
    video_id: Optional[str] = None
    youtube_video_id: str
    video_title: Optional[str] = None
    video_published_at: Optional[str] = None
    action_type: ImportAction


class TranscriptJobRecord(BaseModel):
    """A row of `transcript_jobs`: an async transcript request awaiting completion."""

    model_config = ConfigDict(extra="ignore")

    id: str
    job_id: str
    youtube_video_id: Optional[str] = None
    video_id: Optional[str] = None
    status: TranscriptJobStatus = "pending"
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


__all__ = [
    "ChannelRecord",
    "ImportJobRecord",
    "ImportLogRecord",
    "TranscriptJobRecord",
    "JobStatus",
    "ImportAction",
    "TranscriptJobStatus",
]
