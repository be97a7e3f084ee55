"""Scheduled sweep that imports recently published videos for every channel."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from catalog.models import ChannelRecord
from catalog.store import CatalogStore, TranscriptWriteError
from config.settings import EMBEDDINGS_ENABLED, RECENT_MAX_EXECUTION_SECONDS, RECENT_SCAN_LIMIT, RECENT_WINDOW_HOURS
from services.notifications import ChannelImportCount, MailgunNotifier, RunMetrics
from sources.youtube.channels import YouTubeVideoSource, merge_live_and_regular
from sources.youtube.time_utils import is_within_hours

from .channel_import import refresh_search_index
from .deadline import Deadline
from .ingest import VideoIngestor
from .progress import NullSink, ProgressEvent, ProgressSink

logger = logging.getLogger(__name__)


class RecentImportResult(BaseModel):
    status: Literal["complete", "partial"] = "complete"
    metrics: RunMetrics = Field(default_factory=RunMetrics)
    touched_video_ids: List[str] = Field(default_factory=list)

    def as_payload(self) -> dict:
        return {"success": True, "status": self.status, "metrics": self.metrics.as_payload()}


class RecentVideosImporter:
    def __init__(
        self,
        store: CatalogStore,
        source: YouTubeVideoSource,
        ingestor: VideoIngestor,
        notifier: Optional[MailgunNotifier] = None,
        *,
        window_hours: float = RECENT_WINDOW_HOURS,
        scan_limit: int = RECENT_SCAN_LIMIT,
        generate_embeddings: bool = EMBEDDINGS_ENABLED,
    ):
        self._store = store
        self._source = source
        self._ingestor = ingestor
        self._notifier = notifier
        self._window_hours = window_hours
        self._scan_limit = scan_limit
        self._generate_embeddings = generate_embeddings

    def run(
        self,
        sink: Optional[ProgressSink] = None,
        deadline: Optional[Deadline] = None,
        now: Optional[datetime] = None,
    ) -> RecentImportResult:
        sink = sink or NullSink()
        deadline = deadline or Deadline(RECENT_MAX_EXECUTION_SECONDS)
        result = RecentImportResult()
        if self._notifier:
            self._notifier.send_job_started()
        sink.emit(ProgressEvent.log("Starting recent video import"))

        try:
            channels = self._store.list_channels()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to list channels")
            result.metrics.errors.append(f"Failed to fetch channels: {exc}")
            channels = []

        for channel in channels:
            if deadline.expired():
                result.status = "partial"
                sink.emit(ProgressEvent.log("Time budget reached; remaining channels will be picked up next run"))
                break
            try:
                imported = self._process_channel(channel, sink, deadline, result, now)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Error processing channel %s", channel.display_name())
                result.metrics.errors.append(f"{channel.display_name()}: {exc}")
                continue
            if imported:
                result.metrics.channels.append(
                    ChannelImportCount(channel_name=channel.display_name(), videos_imported=imported)
                )
            if result.status == "partial":
                break

        refresh_search_index(self._store, result.touched_video_ids)
        result.metrics.elapsed_time_ms = deadline.elapsed_ms()
        sink.emit(
            ProgressEvent.log(
                f"Finished: {result.metrics.total_imported} videos imported, "
                f"{len(result.metrics.errors)} errors ({result.status})"
            )
        )
        if self._notifier:
            self._notifier.send_job_completed(result.metrics)
        return result

    def _resolve_youtube_id(self, channel: ChannelRecord) -> Optional[str]:
        youtube_id = channel.youtube_channel_id
        if youtube_id and youtube_id.startswith("UC"):
            return youtube_id
        handle = channel.youtube_channel_handle or channel.channel_handle
        if not handle:
            return None
        info = self._source.resolve_channel(handle)
        if info is None:
            return None
        self._store.update_channel(
            channel.id,
            {"youtube_channel_id": info.channel_id, "youtube_channel_handle": info.handle},
        )
        logger.info("Resolved %s to %s", handle, info.channel_id)
        return info.channel_id

    def _process_channel(
        self,
        channel: ChannelRecord,
        sink: ProgressSink,
        deadline: Deadline,
        result: RecentImportResult,
        now: Optional[datetime],
    ) -> int:
        name = channel.display_name()
        youtube_id = self._resolve_youtube_id(channel)
        if not youtube_id:
            result.metrics.errors.append(f"{name}: Could not resolve YouTube channel from handle")
            sink.emit(ProgressEvent.log(f"{name}: could not resolve YouTube channel"))
            return 0

        regular = self._source.list_videos(youtube_id, self._scan_limit)
        live = self._source.list_live_videos(youtube_id, self._scan_limit)
        videos = merge_live_and_regular(live, regular)
        recent = [video for video in videos if is_within_hours(video.published_at, self._window_hours, now=now)]
        if not recent:
            sink.emit(ProgressEvent.log(f"{name}: no recent videos"))
            return 0

        existing = self._store.find_existing_youtube_ids(channel.id, [video.video_id for video in recent])
        new_videos = [video for video in recent if video.video_id not in existing]
        sink.emit(ProgressEvent.log(f"{name}: {len(new_videos)} new of {len(recent)} recent videos"))

        imported = 0
        for video in new_videos:
            if deadline.expired():
                result.status = "partial"
                sink.emit(ProgressEvent.log(f"{name}: time budget reached"))
                break
            try:
                outcome = self._ingestor.ingest_new(
                    channel.id,
                    video,
                    fetch_transcript=not channel.is_music_channel,
                    generate_embeddings=self._generate_embeddings,
                )
            except TranscriptWriteError as exc:
                logger.error("Transcript not stored for %s: %s", video.video_id, exc)
                result.metrics.errors.append(f"{name}: Failed to save transcript for {video.title}")
                imported += 1
                continue
            except Exception as exc:  # noqa: BLE001
                logger.exception("Error importing video %s", video.video_id)
                result.metrics.errors.append(f"{name}: Error importing {video.title} - {exc}")
                continue

            imported += 1
            if outcome.video_id:
                result.touched_video_ids.append(outcome.video_id)
            if not channel.is_music_channel and not outcome.transcript_written:
                result.metrics.errors.append(f"{name}: No transcript available for {video.title}")
            sink.emit(ProgressEvent.log(f"{name}: imported {video.title}"))
        return imported


__all__ = ["RecentVideosImporter", "RecentImportResult"]
