"""Lightweight records returned by the external video and transcript sources."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ChannelInfo(BaseModel):
    """Channel identity as resolved from YouTube."""

    channel_id: str = Field(..., description="Canonical YouTube channel ID (UC...).")
    handle: str = Field(..., description="Channel handle without the leading '@'.")
    name: str = Field(default="")
    description: str = Field(default="")
    thumbnail_url: str = Field(default="")
    banner_url: Optional[str] = Field(default=None)
    subscriber_count: int = Field(default=0)
    video_count: int = Field(default=0)


class VideoInfo(BaseModel):
    """One entry of a channel listing."""

    video_id: str = Field(..., description="YouTube video ID.")
    title: str = Field(default="")
    description: str = Field(default="")
    thumbnail_url: str = Field(default="")
    duration_seconds: int = Field(default=0)
    published_at: str = Field(
        default="",
        description="Publish time as reported by the source; ISO-8601 or relative ('3 days ago').",
    )
    view_count: int = Field(default=0)
    like_count: int = Field(default=0)
    comment_count: int = Field(default=0)
    is_live: bool = Field(default=False, description="True when the video was (or is) a live stream.")


class TranscriptSegment(BaseModel):
    """A single timed line of spoken text, timings in seconds."""

    text: str
    start_time: float
    duration: float


__all__ = ["ChannelInfo", "VideoInfo", "TranscriptSegment"]
