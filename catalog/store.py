"""Supabase-backed catalog of channels, videos and transcript segments."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from config.settings import STORE_PAGE_SIZE, TRANSCRIPT_BATCH_SIZE
from sources.models import ChannelInfo, TranscriptSegment, VideoInfo
from sources.youtube.time_utils import parse_relative_time

from .models import ChannelRecord, TranscriptJobRecord
from .utils import chunked, normalize_handle, sanitize_handle_for_subdomain

logger = logging.getLogger(__name__)

CHANNEL_COLUMNS = (
    "id, channel_handle, youtube_channel_id, youtube_channel_handle, channel_name, "
    "channel_description, thumbnail_url, banner_url, subscriber_count, video_count, "
    "tenant_id, is_active, is_music_channel, last_synced_at"
)


class TranscriptWriteError(Exception):
    """Raised when transcript segments could not be fully persisted for a video."""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class CatalogStore:
    """Thin query layer over the Supabase tables used by imports."""

    def __init__(self, client, *, page_size: int = STORE_PAGE_SIZE):
        self._client = client
        self._page_size = page_size

    @property
    def client(self):
        return self._client

    def _table(self, name: str):
        return self._client.table(name)

    # --- channels -------------------------------------------------------

    def find_channel(self, handle: str, youtube_channel_id: Optional[str] = None) -> Optional[ChannelRecord]:
        """Match on local handle, YouTube handle, or YouTube channel id."""
        filters: List[str] = []
        cleaned = normalize_handle(handle)
        if cleaned:
            filters += [f"channel_handle.eq.{_quote(cleaned)}", f"youtube_channel_handle.eq.{_quote(cleaned)}"]
        if youtube_channel_id:
            filters.append(f"youtube_channel_id.eq.{_quote(youtube_channel_id)}")
        if not filters:
            return None
        response = (
            self._table("channels").select(CHANNEL_COLUMNS).or_(",".join(filters)).limit(1).execute()
        )
        rows = response.data or []
        return ChannelRecord(**rows[0]) if rows else None

    def get_channel(self, channel_id: str) -> Optional[ChannelRecord]:
        response = self._table("channels").select(CHANNEL_COLUMNS).eq("id", channel_id).limit(1).execute()
        rows = response.data or []
        return ChannelRecord(**rows[0]) if rows else None

    def list_channels(self) -> List[ChannelRecord]:
        response = self._table("channels").select(CHANNEL_COLUMNS).order("channel_name").execute()
        return [ChannelRecord(**row) for row in response.data or []]

    def insert_channel(
        self,
        info: ChannelInfo,
        *,
        thumbnail_url: str,
        banner_url: Optional[str],
        tenant_id: Optional[str] = None,
    ) -> ChannelRecord:
        row = {
            "youtube_channel_id": info.channel_id,
            "channel_handle": sanitize_handle_for_subdomain(info.handle),
            "youtube_channel_handle": normalize_handle(info.handle),
            "channel_name": info.name,
            "channel_description": info.description,
            "thumbnail_url": thumbnail_url,
            "banner_url": banner_url,
            "subscriber_count": info.subscriber_count,
            "tenant_id": tenant_id,
            "last_synced_at": utc_now_iso(),
        }
        response = self._table("channels").insert(row).execute()
        rows = response.data or []
        if not rows:
            raise RuntimeError(f"Channel insert for @{info.handle} returned no row")
        return ChannelRecord(**rows[0])

    def update_channel(self, channel_id: str, changes: Dict[str, Any]) -> None:
        if changes:
            self._table("channels").update(changes).eq("id", channel_id).execute()

    # --- videos ---------------------------------------------------------

    def load_existing_video_ids(self, channel_id: str) -> Dict[str, bool]:
        """Map every stored YouTube id of the channel to its has_transcript flag."""
        existing: Dict[str, bool] = {}
        page = 0
        while True:
            start = page * self._page_size
            response = (
                self._table("videos")
                .select("youtube_video_id, has_transcript")
                .eq("channel_id", channel_id)
                .range(start, start + self._page_size - 1)
                .execute()
            )
            rows = response.data or []
            for row in rows:
                existing[row["youtube_video_id"]] = bool(row.get("has_transcript"))
            if len(rows) < self._page_size:
                break
            page += 1
        logger.info("Loaded %s existing videos for channel %s", len(existing), channel_id)
        return existing

    def find_existing_youtube_ids(self, channel_id: str, youtube_video_ids: Sequence[str]) -> Set[str]:
        found: Set[str] = set()
        for batch in chunked(list(youtube_video_ids), self._page_size):
            response = (
                self._table("videos")
                .select("youtube_video_id")
                .eq("channel_id", channel_id)
                .in_("youtube_video_id", batch)
                .execute()
            )
            found.update(row["youtube_video_id"] for row in response.data or [])
        return found

    def insert_video(self, channel_id: str, video: VideoInfo, *, thumbnail_url: str) -> str:
        row = {
            "channel_id": channel_id,
            "youtube_video_id": video.video_id,
            "title": video.title,
            "description": video.description,
            "thumbnail_url": thumbnail_url,
            "duration_seconds": video.duration_seconds,
            "published_at": parse_relative_time(video.published_at),
            "view_count": video.view_count,
            "like_count": video.like_count,
            "comment_count": video.comment_count,
            "has_transcript": False,
        }
        response = self._table("videos").insert(row).execute()
        rows = response.data or []
        if not rows:
            raise RuntimeError(f"Video insert for {video.video_id} returned no row")
        return rows[0]["id"]

    def find_video_id(self, channel_id: str, youtube_video_id: str) -> Optional[str]:
        response = (
            self._table("videos")
            .select("id")
            .eq("channel_id", channel_id)
            .eq("youtube_video_id", youtube_video_id)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return rows[0]["id"] if rows else None

    def find_video_by_youtube_id(self, youtube_video_id: str) -> Optional[Dict[str, Any]]:
        response = (
            self._table("videos")
            .select("id, channel_id, youtube_video_id, title")
            .eq("youtube_video_id", youtube_video_id)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return rows[0] if rows else None

    def list_video_ids(self, *, channel_id: Optional[str] = None, video_id: Optional[str] = None) -> List[str]:
        """Ids of videos that claim a transcript, optionally narrowed to one channel or video."""
        ids: List[str] = []
        page = 0
        while True:
            start = page * self._page_size
            query = self._table("videos").select("id").eq("has_transcript", True)
            if channel_id:
                query = query.eq("channel_id", channel_id)
            if video_id:
                query = query.eq("id", video_id)
            rows = query.range(start, start + self._page_size - 1).execute().data or []
            ids.extend(row["id"] for row in rows)
            if len(rows) < self._page_size:
                break
            page += 1
        return ids

    def set_transcript_flags(self, video_id: str, *, has_transcript: bool, has_quality_transcript: bool) -> None:
        self._table("videos").update(
            {"has_transcript": has_transcript, "has_quality_transcript": has_quality_transcript}
        ).eq("id", video_id).execute()

    def set_quality_flag(self, video_id: str, has_quality_transcript: bool) -> None:
        self._table("videos").update({"has_quality_transcript": has_quality_transcript}).eq("id", video_id).execute()

    # --- transcripts ----------------------------------------------------

    def count_transcripts(self, video_id: str) -> int:
        response = (
            self._table("transcripts")
            .select("id", count="exact", head=True)
            .eq("video_id", video_id)
            .execute()
        )
        return response.count or 0

    def replace_transcript(
        self,
        video_id: str,
        segments: Sequence[TranscriptSegment],
        *,
        batch_size: int = TRANSCRIPT_BATCH_SIZE,
    ) -> int:
        """
        Delete any stored segments for the video, insert the new ones in
        batches, then verify the stored count. Raises TranscriptWriteError when
        a batch fails or the count does not match.
        """
        self._table("transcripts").delete().eq("video_id", video_id).execute()
        rows = [
            {
                "video_id": video_id,
                "text": segment.text,
                "start_time": segment.start_time,
                "duration": segment.duration,
            }
            for segment in segments
        ]
        for index, batch in enumerate(chunked(rows, batch_size)):
            try:
                self._table("transcripts").insert(batch).execute()
            except Exception as exc:  # noqa: BLE001
                raise TranscriptWriteError(
                    f"Transcript batch {index + 1} failed for video {video_id}: {exc}"
                ) from exc

        stored = self.count_transcripts(video_id)
        if stored != len(rows):
            raise TranscriptWriteError(
                f"Transcript count mismatch for video {video_id}: expected {len(rows)}, stored {stored}"
            )
        return stored

    def transcript_texts(self, video_id: str) -> List[str]:
        texts: List[str] = []
        page = 0
        while True:
            start = page * self._page_size
            rows = (
                self._table("transcripts")
                .select("text")
                .eq("video_id", video_id)
                .order("start_time")
                .range(start, start + self._page_size - 1)
                .execute()
                .data
                or []
            )
            texts.extend(row.get("text") or "" for row in rows)
            if len(rows) < self._page_size:
                break
            page += 1
        return texts

    def segments_missing_embeddings(self, video_id: str, limit: int) -> List[Dict[str, Any]]:
        response = (
            self._table("transcripts")
            .select("id, text")
            .eq("video_id", video_id)
            .is_("embedding", "null")
            .order("start_time")
            .limit(limit)
            .execute()
        )
        return response.data or []

    def count_segments_missing_embeddings(self, video_id: str) -> int:
        response = (
            self._table("transcripts")
            .select("id", count="exact", head=True)
            .eq("video_id", video_id)
            .is_("embedding", "null")
            .execute()
        )
        return response.count or 0

    def update_segment_embedding(self, segment_id: str, embedding: List[float]) -> None:
        self._table("transcripts").update({"embedding": embedding}).eq("id", segment_id).execute()

    # --- search index ---------------------------------------------------

    def refresh_search_index(self, video_ids: Iterable[str]) -> None:
        ids = list(dict.fromkeys(video_ids))
        if not ids:
            return
        self._client.rpc("refresh_transcript_search_for_videos", {"p_video_ids": ids}).execute()

    def rebuild_search_index(self) -> Any:
        return self._client.rpc("perform_transcript_search_refresh", {}).execute().data

    def search_index_status(self) -> Optional[Dict[str, Any]]:
        response = (
            self._table("transcript_search_refresh_status")
            .select("needs_refresh, last_refreshed_at, refresh_in_progress")
            .eq("id", 1)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return rows[0] if rows else None

    # --- async transcript jobs -----------------------------------------

    def record_transcript_job(self, job_id: str, youtube_video_id: str, video_id: Optional[str] = None) -> None:
        self._table("transcript_jobs").insert(
            {
                "job_id": job_id,
                "youtube_video_id": youtube_video_id,
                "video_id": video_id,
                "status": "pending",
            }
        ).execute()

    def pending_transcript_jobs(self, *, min_age_seconds: float, limit: int) -> List[TranscriptJobRecord]:
        cutoff = (datetime.now(timezone.utc) - timedelta(seconds=min_age_seconds)).isoformat()
        response = (
            self._table("transcript_jobs")
            .select("*")
            .in_("status", ["pending", "processing"])
            .lt("created_at", cutoff)
            .order("created_at")
            .limit(limit)
            .execute()
        )
        return [TranscriptJobRecord(**row) for row in response.data or []]

    def update_transcript_job(self, row_id: str, changes: Dict[str, Any]) -> None:
        self._table("transcript_jobs").update(changes).eq("id", row_id).execute()


__all__ = ["CatalogStore", "TranscriptWriteError", "utc_now_iso"]
