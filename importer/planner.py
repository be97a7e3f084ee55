"""Pure selection of which listed videos an import run works on."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from sources.models import VideoInfo
from sources.youtube.time_utils import published_sort_key

ALREADY_COMPLETE = "already-complete"
NEEDS_TRANSCRIPT = "needs-transcript-only"
NEW_IMPORT = "new-import"


def classify(video: VideoInfo, existing: Dict[str, bool]) -> str:
    if video.video_id not in existing:
        return NEW_IMPORT
    return ALREADY_COMPLETE if existing[video.video_id] else NEEDS_TRANSCRIPT


def newest_first(videos: Sequence[VideoInfo], now: Optional[datetime] = None) -> List[VideoInfo]:
    """Most recently published first; unknown publish dates last, listing order otherwise kept."""
    return sorted(videos, key=lambda video: published_sort_key(video.published_at, now=now))


class ImportPlan(BaseModel):
    new_videos: List[VideoInfo] = Field(default_factory=list)
    transcript_videos: List[VideoInfo] = Field(default_factory=list)
    total_listed: int = 0
    already_complete: int = 0
    needs_transcript: int = 0
    new_available: int = 0

    @property
    def selected(self) -> List[VideoInfo]:
        return self.new_videos + self.transcript_videos


def plan_import(
    videos: Sequence[VideoInfo],
    existing: Dict[str, bool],
    limit: int,
    *,
    include_live: bool = False,
    skip_transcripts: bool = False,
    transcripts_only: bool = False,
    now: Optional[datetime] = None,
) -> ImportPlan:
    """
    Spend at most `limit` slots: new imports first (live ahead of regular
    when live videos are included), then transcript backfills for stored
    videos that lack one. Already-complete videos never take a slot.
    """
    new: List[VideoInfo] = []
    backfill: List[VideoInfo] = []
    complete = 0
    for video in videos:
        state = classify(video, existing)
        if state == NEW_IMPORT:
            new.append(video)
        elif state == NEEDS_TRANSCRIPT:
            backfill.append(video)
        else:
            complete += 1

    plan = ImportPlan(
        total_listed=len(videos),
        already_complete=complete,
        needs_transcript=len(backfill),
        new_available=len(new),
    )
    budget = max(0, limit)

    if transcripts_only:
        plan.transcript_videos = newest_first(backfill, now=now)[:budget]
        return plan

    if include_live:
        ordered_new = newest_first([v for v in new if v.is_live], now=now) + newest_first(
            [v for v in new if not v.is_live], now=now
        )
    else:
        ordered_new = newest_first(new, now=now)
    plan.new_videos = ordered_new[:budget]

    remaining = budget - len(plan.new_videos)
    if remaining > 0 and not skip_transcripts:
        plan.transcript_videos = newest_first(backfill, now=now)[:remaining]
    return plan


__all__ = [
    "ALREADY_COMPLETE",
    "NEEDS_TRANSCRIPT",
    "NEW_IMPORT",
    "ImportPlan",
    "classify",
    "newest_first",
    "plan_import",
]
