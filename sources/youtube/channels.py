"""Channel resolution and video listing backed by the YouTube Data API."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from googleapiclient.errors import HttpError

from sources.models import ChannelInfo, VideoInfo

from .client import execute_request, get_youtube_service, redact_request_uri, uploads_playlist_id
from .time_utils import parse_iso8601_duration

logger = logging.getLogger(__name__)

_PAGE_SIZE = 50
_AVATAR_SIZE_PATTERN = re.compile(r"=s\d+")


def _to_int(value: Any) -> int:
    try:
        return int(value) if value is not None else 0
    except (TypeError, ValueError):
        return 0


def _best_thumbnail(thumbnails: Dict[str, Any]) -> str:
    for key in ("maxres", "standard", "high", "medium", "default"):
        url = (thumbnails.get(key) or {}).get("url")
        if url:
            return url
    return ""


def banner_from_avatar(avatar_url: Optional[str]) -> Optional[str]:
    """Fallback banner: the avatar resized to 500px."""
    if not avatar_url:
        return None
    if _AVATAR_SIZE_PATTERN.search(avatar_url):
        return _AVATAR_SIZE_PATTERN.sub("=s500", avatar_url)
    return avatar_url


def merge_live_and_regular(live: Iterable[VideoInfo], regular: Iterable[VideoInfo]) -> List[VideoInfo]:
    """Deduplicate by video id, live entries first; a live classification always wins."""
    merged: Dict[str, VideoInfo] = {}
    for video in live:
        if video.video_id not in merged:
            merged[video.video_id] = video.model_copy(update={"is_live": True})
    for video in regular:
        if video.video_id not in merged:
            merged[video.video_id] = video
    return list(merged.values())


class YouTubeVideoSource:
    """Resolves channels and lists their uploads through the Data API."""

    def __init__(self, service=None, *, retries: int = 2):
        self._service = service
        self._retries = retries
        self._scan_cache: Dict[Tuple[str, int], List[VideoInfo]] = {}

    @property
    def service(self):
        if self._service is None:
            self._service = get_youtube_service()
        return self._service

    def _execute(self, request, label: str) -> Dict[str, Any]:
        sanitized_uri = redact_request_uri(request)
        if sanitized_uri:
            logger.info("YouTube API request (%s): %s", label, sanitized_uri)
        return execute_request(request, retries=self._retries, label=label)

    def resolve_channel(self, handle: str) -> Optional[ChannelInfo]:
        """Look up a channel by handle (or UC id). Returns None when it cannot be found."""
        cleaned = (handle or "").strip().lstrip("@")
        if not cleaned:
            return None
        lookup: Dict[str, Any] = {"id": cleaned} if cleaned.startswith("UC") else {"forHandle": cleaned}
        try:
            request = self.service.channels().list(
                part="snippet,statistics,brandingSettings,contentDetails",
                maxResults=1,
                **lookup,
            )
            response = self._execute(request, "channel lookup")
        except HttpError as http_err:
            logger.warning("YouTube API error resolving channel %s: %s", handle, http_err)
            return None
        except Exception as exc:  # noqa: BLE001
            logger.warning("Unexpected error resolving channel %s: %s", handle, exc)
            return None

        items = response.get("items") or []
        if not items:
            logger.info("No YouTube channel found for %s", handle)
            return None
        item = items[0]
        snippet = item.get("snippet", {})
        statistics = item.get("statistics", {})
        avatar = _best_thumbnail(snippet.get("thumbnails", {}))
        banner = (
            item.get("brandingSettings", {}).get("image", {}).get("bannerExternalUrl")
            or banner_from_avatar(avatar)
        )
        custom_url = (snippet.get("customUrl") or "").lstrip("@")
        return ChannelInfo(
            channel_id=item.get("id", ""),
            handle=custom_url or cleaned,
            name=snippet.get("title", ""),
            description=snippet.get("description", ""),
            thumbnail_url=avatar,
            banner_url=banner,
            subscriber_count=_to_int(statistics.get("subscriberCount")),
            video_count=_to_int(statistics.get("videoCount")),
        )

    def list_videos(self, channel_id: str, limit: int) -> List[VideoInfo]:
        """Regular (non-live) uploads, newest first, from a scan of up to `limit` uploads."""
        return [video for video in self._scan_uploads(channel_id, limit) if not video.is_live]

    def list_live_videos(self, channel_id: str, limit: int) -> List[VideoInfo]:
        """Uploads carrying live-streaming details (past or current streams)."""
        return [video for video in self._scan_uploads(channel_id, limit) if video.is_live]

    def get_video(self, video_id: str) -> Optional[VideoInfo]:
        try:
            videos = self._enrich([video_id])
        except HttpError as http_err:
            logger.warning("YouTube API error fetching video %s: %s", video_id, http_err)
            return None
        return videos[0] if videos else None

    def _scan_uploads(self, channel_id: str, limit: int) -> List[VideoInfo]:
        key = (channel_id, limit)
        if key not in self._scan_cache:
            self._scan_cache[key] = self._fetch_uploads(channel_id, limit)
        return self._scan_cache[key]

    def _fetch_uploads(self, channel_id: str, limit: int) -> List[VideoInfo]:
        playlist_id = uploads_playlist_id(channel_id)
        if not playlist_id or limit <= 0:
            return []

        video_ids: List[str] = []
        page_token: Optional[str] = None
        while len(video_ids) < limit:
            request = self.service.playlistItems().list(
                part="contentDetails",
                playlistId=playlist_id,
                maxResults=min(_PAGE_SIZE, limit - len(video_ids)),
                pageToken=page_token,
            )
            try:
                response = self._execute(request, "playlist uploads")
            except HttpError as http_err:
                logger.warning("YouTube API error listing uploads for %s: %s", channel_id, http_err)
                break
            for item in response.get("items", []):
                video_id = item.get("contentDetails", {}).get("videoId")
                if video_id:
                    video_ids.append(video_id)
            page_token = response.get("nextPageToken")
            if not page_token:
                break

        videos: List[VideoInfo] = []
        for start in range(0, len(video_ids), _PAGE_SIZE):
            videos.extend(self._enrich(video_ids[start : start + _PAGE_SIZE]))
        logger.info("Scanned %s uploads for channel %s", len(videos), channel_id)
        return videos

    def _enrich(self, video_ids: List[str]) -> List[VideoInfo]:
        request = self.service.videos().list(
            part="snippet,statistics,contentDetails,liveStreamingDetails",
            id=",".join(video_ids),
            maxResults=_PAGE_SIZE,
        )
        response = self._execute(request, "video details")
        by_id = {item.get("id"): item for item in response.get("items", [])}

        enriched: List[VideoInfo] = []
        # videos.list does not preserve request order
        for video_id in video_ids:
            item = by_id.get(video_id)
            if not item:
                continue
            snippet = item.get("snippet", {})
            statistics = item.get("statistics", {})
            try:
                duration = parse_iso8601_duration(item.get("contentDetails", {}).get("duration"))
            except ValueError:
                logger.warning("Failed to parse duration for video %s", video_id)
                duration = 0
            enriched.append(
                VideoInfo(
                    video_id=video_id,
                    title=snippet.get("title", ""),
                    description=snippet.get("description", ""),
                    thumbnail_url=_best_thumbnail(snippet.get("thumbnails", {})),
                    duration_seconds=duration,
                    published_at=snippet.get("publishedAt", ""),
                    view_count=_to_int(statistics.get("viewCount")),
                    like_count=_to_int(statistics.get("likeCount")),
                    comment_count=_to_int(statistics.get("commentCount")),
                    is_live="liveStreamingDetails" in item,
                )
            )
        return enriched


__all__ = ["YouTubeVideoSource", "merge_live_and_regular", "banner_from_avatar"]
