"""Channel import orchestration: resolve, reconcile, select, ingest, refresh, report."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional

from pydantic import BaseModel, Field, field_validator

from catalog.jobs import ImportJobStore
from catalog.models import ChannelRecord
from catalog.store import CatalogStore, TranscriptWriteError, utc_now_iso
from catalog.utils import normalize_handle
from config.settings import IMPORT_DEFAULT_LIMIT, IMPORT_MAX_LIMIT, SOURCE_SCAN_LIMIT
from sources.models import ChannelInfo, VideoInfo
from sources.youtube.channels import YouTubeVideoSource, merge_live_and_regular

from .deadline import Deadline
from .ingest import IngestResult, VideoIngestor
from .planner import NEW_IMPORT, classify, newest_first, plan_import
from .progress import CompositeSink, JobTableSink, NullSink, ProgressEvent, ProgressSink, stream_events

logger = logging.getLogger(__name__)


class ChannelImportError(Exception):
    """Fatal import failure: the channel could not be resolved or created."""


def clamp_limit(value: Optional[int]) -> int:
    if value is None:
        return IMPORT_DEFAULT_LIMIT
    return max(1, min(IMPORT_MAX_LIMIT, int(value)))


class ImportOptions(BaseModel):
    channel_handle: str = Field(..., description="YouTube handle, with or without '@'.")
    limit: int = Field(default=IMPORT_DEFAULT_LIMIT, description="Videos to process in this run (1-5000).")
    include_live_videos: bool = False
    skip_transcripts: bool = False
    transcripts_only: bool = False
    tenant_id: Optional[str] = None
    job_id: Optional[str] = None
    generate_embeddings: bool = True

    @field_validator("limit", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> int:
        return clamp_limit(value)


class ImportSummary(BaseModel):
    channel_id: str
    channel: Dict[str, Any] = Field(default_factory=dict)
    videos_processed: int = 0
    transcripts_downloaded: int = 0
    embeddings_generated: int = 0
    stopped_early: bool = False
    touched_video_ids: List[str] = Field(default_factory=list)


def _channel_payload(record: ChannelRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "name": record.channel_name,
        "handle": record.channel_handle,
        "youtubeChannelId": record.youtube_channel_id,
    }


class ChannelImporter:
    """Single orchestrator behind the streaming route, background jobs and the CLI."""

    def __init__(
        self,
        store: CatalogStore,
        source: YouTubeVideoSource,
        ingestor: VideoIngestor,
        *,
        scan_limit: int = SOURCE_SCAN_LIMIT,
    ):
        self._store = store
        self._source = source
        self._ingestor = ingestor
        self._scan_limit = scan_limit

    # --- channel identity ------------------------------------------------

    def _sync_channel(self, info: ChannelInfo, tenant_id: Optional[str]) -> ChannelRecord:
        mirror = self._ingestor.mirror
        thumbnail = mirror.mirror_channel_thumbnail(info.channel_id, info.thumbnail_url)
        banner = info.banner_url
        if banner:
            banner = mirror.mirror_channel_banner(info.channel_id, banner)

        existing = self._store.find_channel(info.handle, info.channel_id)
        if existing is None:
            try:
                return self._store.insert_channel(
                    info, thumbnail_url=thumbnail, banner_url=banner, tenant_id=tenant_id
                )
            except Exception as exc:  # noqa: BLE001
                raise ChannelImportError(f"Failed to create channel: {exc}") from exc

        changes: Dict[str, Any] = {
            "channel_description": info.description,
            "thumbnail_url": thumbnail,
            "banner_url": banner,
            "subscriber_count": info.subscriber_count,
            "last_synced_at": utc_now_iso(),
        }
        if not existing.channel_name:
            changes["channel_name"] = info.name
        self._store.update_channel(existing.id, changes)
        return existing.model_copy(update={k: v for k, v in changes.items() if k != "last_synced_at"})

    def _list_videos(self, channel_id: str, limit: int, include_live: bool) -> List[VideoInfo]:
        regular = self._source.list_videos(channel_id, limit)
        if not include_live:
            return regular
        live = self._source.list_live_videos(channel_id, limit)
        return merge_live_and_regular(live, regular)

    # --- full import -----------------------------------------------------

    def import_channel(
        self,
        options: ImportOptions,
        sink: Optional[ProgressSink] = None,
        deadline: Optional[Deadline] = None,
    ) -> ImportSummary:
        sink = sink or NullSink()
        try:
            return self._import_channel(options, sink, deadline or Deadline.unlimited())
        except ChannelImportError as exc:
            sink.emit(ProgressEvent.error(str(exc)))
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("Import of %s failed", options.channel_handle)
            sink.emit(ProgressEvent.error(str(exc) or "Failed to import channel"))
            raise ChannelImportError(str(exc)) from exc

    def _import_channel(self, options: ImportOptions, sink: ProgressSink, deadline: Deadline) -> ImportSummary:
        handle = normalize_handle(options.channel_handle)
        if handle is None:
            raise ChannelImportError("Channel handle is required")
        sink.emit(ProgressEvent.status("Fetching channel info..."))
        info = self._source.resolve_channel(handle)
        if info is None:
            raise ChannelImportError("Channel not found")

        sink.emit(ProgressEvent.status("Setting up channel..."))
        channel = self._sync_channel(info, options.tenant_id)
        skip_transcripts = options.skip_transcripts or channel.is_music_channel
        if channel.is_music_channel and not options.skip_transcripts:
            logger.info("Channel %s is a music channel; skipping transcripts", channel.display_name())

        sink.emit(ProgressEvent.status("Fetching videos from YouTube..."))
        videos = self._list_videos(info.channel_id, self._scan_limit, options.include_live_videos)

        sink.emit(ProgressEvent.status("Checking for existing videos..."))
        existing = self._store.load_existing_video_ids(channel.id)
        plan = plan_import(
            videos,
            existing,
            options.limit,
            include_live=options.include_live_videos,
            skip_transcripts=skip_transcripts,
            transcripts_only=options.transcripts_only,
        )
        if skip_transcripts:
            plan.transcript_videos = []
        logger.info(
            "Import plan for %s: listed=%s existing=%s new=%s backfill=%s",
            channel.display_name(),
            plan.total_listed,
            len(existing),
            len(plan.new_videos),
            len(plan.transcript_videos),
        )

        self._store.update_channel(channel.id, {"video_count": len(videos)})
        backfill_note = (
            f" and fetching {len(plan.transcript_videos)} transcripts" if plan.transcript_videos else ""
        )
        sink.emit(ProgressEvent.status(f"Importing {len(plan.new_videos)} new videos{backfill_note}..."))

        total = len(plan.new_videos) + len(plan.transcript_videos)
        summary = ImportSummary(channel_id=channel.id, channel=_channel_payload(channel))
        position = 0

        work = [(video, True) for video in plan.new_videos] + [(video, False) for video in plan.transcript_videos]
        for video, is_new in work:
            if deadline.expired():
                logger.info("Deadline reached after %s videos for %s", summary.videos_processed, channel.display_name())
                summary.stopped_early = True
                break
            position += 1
            suffix = " [LIVE]" if video.is_live and options.include_live_videos else ""
            if not is_new:
                suffix = " [TRANSCRIPT ONLY]"
            sink.emit(ProgressEvent.progress(position, total, f"{video.title}{suffix}"))
            self._process_video(channel.id, video, is_new, options, skip_transcripts, sink, summary)

        if summary.transcripts_downloaded > 0:
            sink.emit(ProgressEvent.status("Refreshing search index..."))
            refresh_search_index(self._store, summary.touched_video_ids)

        sink.emit(
            ProgressEvent(
                type="complete",
                message="Import stopped early; run again to continue" if summary.stopped_early else "Import complete!",
                channel=summary.channel,
                videos_processed=summary.videos_processed,
                transcripts_downloaded=summary.transcripts_downloaded,
                embeddings_generated=summary.embeddings_generated,
                stopped_early=summary.stopped_early,
            )
        )
        return summary

    def _process_video(
        self,
        channel_id: str,
        video: VideoInfo,
        is_new: bool,
        options: ImportOptions,
        skip_transcripts: bool,
        sink: ProgressSink,
        summary: ImportSummary,
    ) -> None:
        result: Optional[IngestResult] = None
        try:
            if is_new:
                result = self._ingestor.ingest_new(
                    channel_id,
                    video,
                    fetch_transcript=not skip_transcripts,
                    generate_embeddings=options.generate_embeddings,
                    sink=sink,
                )
            else:
                result = self._ingestor.backfill_transcript(
                    channel_id, video, generate_embeddings=options.generate_embeddings, sink=sink
                )
                if result.video_id is None:
                    return
        except TranscriptWriteError as exc:
            logger.error("Transcript not stored for %s: %s", video.video_id, exc)
            if is_new:
                summary.videos_processed += 1
            return
        except Exception:  # noqa: BLE001
            logger.exception("Error processing video %s", video.video_id)
            return

        summary.videos_processed += 1
        if result.transcript_written:
            summary.transcripts_downloaded += 1
        summary.embeddings_generated += result.embeddings_generated
        if result.video_id and (is_new or result.transcript_written):
            summary.touched_video_ids.append(result.video_id)

    # --- read-only preview ---------------------------------------------

    def preview_channel(self, handle: str, limit: Optional[int] = None, include_live: bool = False) -> Optional[Dict[str, Any]]:
        """Breakdown of what an import would do, without writing anything. None if unresolvable."""
        cleaned = normalize_handle(handle)
        info = self._source.resolve_channel(cleaned) if cleaned else None
        if info is None:
            return None
        videos = self._list_videos(info.channel_id, clamp_limit(limit), include_live)
        channel = self._store.find_channel(info.handle, info.channel_id)
        existing = self._store.load_existing_video_ids(channel.id) if channel else {}
        with_transcripts = sum(1 for flag in existing.values() if flag)

        needing_action = []
        for video in newest_first([v for v in videos if existing.get(v.video_id) is not True]):
            needing_action.append(
                {
                    "videoId": video.video_id,
                    "title": video.title,
                    "thumbnailUrl": video.thumbnail_url,
                    "publishedAt": video.published_at,
                    "isLive": video.is_live,
                    "status": "needs_import" if classify(video, existing) == NEW_IMPORT else "needs_transcript",
                }
            )
        return {
            "channel": {
                "name": info.name,
                "handle": info.handle,
                "thumbnailUrl": info.thumbnail_url,
                "subscriberCount": info.subscriber_count,
            },
            "breakdown": {
                "totalOnYouTube": len(videos),
                "alreadyImported": len(existing),
                "newToImport": sum(1 for v in videos if v.video_id not in existing),
                "importedWithTranscripts": with_transcripts,
                "importedWithoutTranscripts": len(existing) - with_transcripts,
                "needsTranscripts": len(existing) - with_transcripts,
            },
            "channelExists": channel is not None,
            "channelId": channel.id if channel else None,
            "videos": needing_action,
        }

    # --- one-off admin operations --------------------------------------

    def import_single_video(self, channel_id: str, youtube_video_id: str) -> Optional[IngestResult]:
        """Import one video into an existing channel. None when the video cannot be found."""
        existing_id = self._store.find_video_id(channel_id, youtube_video_id)
        if existing_id:
            logger.info("Video %s already imported as %s", youtube_video_id, existing_id)
            return IngestResult(video_id=existing_id)
        video = self._source.get_video(youtube_video_id)
        if video is None:
            return None
        channel = self._store.get_channel(channel_id)
        fetch = not (channel and channel.is_music_channel)
        result = self._ingestor.ingest_new(channel_id, video, fetch_transcript=fetch)
        if result.transcript_written:
            refresh_search_index(self._store, [result.video_id])
        return result

    def refresh_transcript(self, channel_id: str, youtube_video_id: str) -> Optional[IngestResult]:
        """Replace the stored transcript of one video. None when the video is not in the catalog."""
        placeholder = VideoInfo(video_id=youtube_video_id)
        result = self._ingestor.backfill_transcript(channel_id, placeholder)
        if result.video_id is None:
            return None
        if result.transcript_written:
            refresh_search_index(self._store, [result.video_id])
        return result


def refresh_search_index(store: CatalogStore, video_ids: List[str]) -> bool:
    """Incremental index refresh for the given videos; failures are logged, never raised."""
    if not video_ids:
        return False
    try:
        store.refresh_search_index(video_ids)
    except Exception as exc:  # noqa: BLE001
        logger.error("Search index refresh failed for %s videos: %s", len(video_ids), exc)
        return False
    logger.info("Search index refreshed for %s videos", len(video_ids))
    return True


def stream_import(
    importer: ChannelImporter,
    options: ImportOptions,
    deadline: Optional[Deadline] = None,
    extra_sink: Optional[ProgressSink] = None,
) -> Iterator[str]:
    """NDJSON lines for one import run, produced as the run progresses."""

    def _run(sink: ProgressSink) -> None:
        target = CompositeSink([sink, extra_sink]) if extra_sink else sink
        try:
            importer.import_channel(options, target, deadline)
        except ChannelImportError:
            # already reported through the sink
            return

    return stream_events(_run)


def run_import_job(
    importer: ChannelImporter,
    jobs: ImportJobStore,
    job_id: str,
    options: ImportOptions,
    sink: Optional[ProgressSink] = None,
) -> Optional[ImportSummary]:
    """Background job body: drives the job row from running to completed or failed."""
    jobs.mark_running(job_id)
    job_sink = JobTableSink(jobs, job_id)
    target = CompositeSink([job_sink, sink]) if sink else job_sink
    try:
        summary = importer.import_channel(options.model_copy(update={"job_id": job_id}), target)
    except ChannelImportError as exc:
        jobs.mark_failed(job_id, str(exc))
        return None
    jobs.mark_completed(
        job_id,
        f"Imported {summary.videos_processed} videos, {summary.transcripts_downloaded} transcripts",
    )
    return summary


__all__ = [
    "ChannelImportError",
    "ChannelImporter",
    "ImportOptions",
    "ImportSummary",
    "clamp_limit",
    "refresh_search_index",
    "run_import_job",
    "stream_import",
]
