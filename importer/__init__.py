"""Import orchestration and the factories that wire it to live services."""

from __future__ import annotations

from typing import Optional

from catalog import get_catalog_store
from config.settings import EMBEDDINGS_ENABLED
from services.asset_mirror import AssetMirror
from services.embeddings import EmbeddingService
from services.notifications import MailgunNotifier
from sources.transcripts import SupadataTranscriptClient
from sources.youtube.channels import YouTubeVideoSource

from .channel_import import (
    ChannelImporter,
    ChannelImportError,
    ImportOptions,
    ImportSummary,
    run_import_job,
    stream_import,
)
from .deadline import Deadline
from .ingest import IngestResult, VideoIngestor
from .planner import ImportPlan, plan_import
from .progress import ProgressEvent, ProgressSink
from .recent_import import RecentImportResult, RecentVideosImporter

_ingestor: Optional[VideoIngestor] = None


def get_ingestor() -> VideoIngestor:
    global _ingestor  # noqa: PLW0603
    if _ingestor is None:
        store = get_catalog_store()
        _ingestor = VideoIngestor(
            store,
            SupadataTranscriptClient(),
            AssetMirror(),
            EmbeddingService(store) if EMBEDDINGS_ENABLED else None,
        )
    return _ingestor


def build_channel_importer() -> ChannelImporter:
    # fresh source per run so the memoised upload scan never goes stale
    return ChannelImporter(get_catalog_store(), YouTubeVideoSource(), get_ingestor())


def build_recent_importer() -> RecentVideosImporter:
    return RecentVideosImporter(get_catalog_store(), YouTubeVideoSource(), get_ingestor(), MailgunNotifier())


__all__ = [
    "ChannelImporter",
    "ChannelImportError",
    "Deadline",
    "ImportOptions",
    "ImportPlan",
    "ImportSummary",
    "IngestResult",
    "ProgressEvent",
    "ProgressSink",
    "RecentImportResult",
    "RecentVideosImporter",
    "VideoIngestor",
    "build_channel_importer",
    "build_recent_importer",
    "get_ingestor",
    "plan_import",
    "run_import_job",
    "stream_import",
]
