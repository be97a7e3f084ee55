"""Per-video work shared by every import path: thumbnail, row, transcript, embeddings."""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel

from catalog.store import CatalogStore, TranscriptWriteError
from services.asset_mirror import AssetMirror
from services.embeddings import EmbeddingService
from services.transcript_quality import QualityPolicy, is_quality_transcript, quality_reason
from sources.models import VideoInfo
from sources.transcripts import SupadataTranscriptClient

from .progress import NullSink, ProgressSink

logger = logging.getLogger(__name__)


class IngestResult(BaseModel):
    video_id: Optional[str] = None
    transcript_written: bool = False
    quality: bool = False
    quality_reason: Optional[str] = None
    embeddings_generated: int = 0


class VideoIngestor:
    """Writes one video into the catalog; each step mirrors what the admin UI expects to find."""

    def __init__(
        self,
        store: CatalogStore,
        transcripts: SupadataTranscriptClient,
        mirror: AssetMirror,
        embeddings: Optional[EmbeddingService] = None,
        quality_policy: Optional[QualityPolicy] = None,
    ):
        self._store = store
        self._transcripts = transcripts
        self._mirror = mirror
        self._embeddings = embeddings
        self._quality_policy = quality_policy

    @property
    def store(self) -> CatalogStore:
        return self._store

    @property
    def mirror(self) -> AssetMirror:
        return self._mirror

    def ingest_new(
        self,
        channel_id: str,
        video: VideoInfo,
        *,
        fetch_transcript: bool = True,
        generate_embeddings: bool = False,
        sink: Optional[ProgressSink] = None,
    ) -> IngestResult:
        sink = sink or NullSink()
        thumbnail = self._mirror.mirror_video_thumbnail(video.video_id, video.thumbnail_url)
        video_id = self._store.insert_video(channel_id, video, thumbnail_url=thumbnail)
        sink.record("video_imported", video, video_id)
        result = IngestResult(video_id=video_id)
        if fetch_transcript:
            self._attach_transcript(result, video, generate_embeddings=generate_embeddings, sink=sink)
        return result

    def backfill_transcript(
        self,
        channel_id: str,
        video: VideoInfo,
        *,
        generate_embeddings: bool = False,
        sink: Optional[ProgressSink] = None,
    ) -> IngestResult:
        sink = sink or NullSink()
        video_id = self._store.find_video_id(channel_id, video.video_id)
        if not video_id:
            logger.warning("Stored video %s not found for channel %s", video.video_id, channel_id)
            return IngestResult()
        result = IngestResult(video_id=video_id)
        self._attach_transcript(result, video, generate_embeddings=generate_embeddings, sink=sink)
        return result

    def _attach_transcript(
        self,
        result: IngestResult,
        video: VideoInfo,
        *,
        generate_embeddings: bool,
        sink: ProgressSink,
    ) -> None:
        video_id = result.video_id
        segments = self._transcripts.fetch_transcript(
            video.video_id,
            job_recorder=lambda job_id, youtube_id: self._store.record_transcript_job(job_id, youtube_id, video_id),
        )
        if not segments:
            sink.record("transcript_skipped", video, video_id)
            return

        # raises TranscriptWriteError; has_transcript stays false in that case
        self._store.replace_transcript(video_id, segments)
        quality = is_quality_transcript(segments, self._quality_policy)
        self._store.set_transcript_flags(video_id, has_transcript=True, has_quality_transcript=quality)
        result.transcript_written = True
        result.quality = quality
        result.quality_reason = quality_reason(segments, self._quality_policy)
        sink.record("transcript_downloaded", video, video_id)
        logger.info("Stored %s transcript segments for %s (quality=%s)", len(segments), video.video_id, quality)

        if generate_embeddings and self._embeddings is not None:
            try:
                result.embeddings_generated = self._embeddings.generate_all(video_id)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Embedding generation failed for %s: %s", video.video_id, exc)


__all__ = ["VideoIngestor", "IngestResult", "TranscriptWriteError"]
