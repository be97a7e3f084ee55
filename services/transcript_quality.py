"""Heuristics for telling real speech transcripts from music/applause filler."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional, Protocol, Set

from sources.models import TranscriptSegment

logger = logging.getLogger(__name__)


def _unique_words(texts: Iterable[str]) -> Set[str]:
    words: Set[str] = set()
    for text in texts:
        words.update(word for word in (text or "").lower().split() if word)
    return words


class QualityPolicy(Protocol):
    def is_quality(self, texts: Iterable[str]) -> bool: ...

    def reason(self, texts: Iterable[str]) -> str: ...


class UniqueWordQualityPolicy:
    """A transcript is quality when it has at least `min_unique_words` distinct words."""

    def __init__(self, min_unique_words: int = 10):
        self.min_unique_words = min_unique_words

    def is_quality(self, texts: Iterable[str]) -> bool:
        unique = _unique_words(texts)
        if len(unique) < self.min_unique_words:
            logger.debug("Low quality transcript: %s unique words", len(unique))
            return False
        return True

    def reason(self, texts: Iterable[str]) -> str:
        collected = list(texts)
        if not collected:
            return "No transcript available"
        unique = _unique_words(collected)
        if not unique:
            return "Empty transcript"
        if len(unique) < self.min_unique_words:
            return f"Only {len(unique)} unique words (need at least {self.min_unique_words})"
        return "Quality transcript"


DEFAULT_POLICY = UniqueWordQualityPolicy()


def is_quality_transcript(
    segments: Iterable[TranscriptSegment], policy: Optional[QualityPolicy] = None
) -> bool:
    return (policy or DEFAULT_POLICY).is_quality(segment.text for segment in segments)


def quality_reason(segments: Iterable[TranscriptSegment], policy: Optional[QualityPolicy] = None) -> str:
    return (policy or DEFAULT_POLICY).reason([segment.text for segment in segments])


def recheck_quality(
    store,
    *,
    video_id: Optional[str] = None,
    channel_id: Optional[str] = None,
    policy: Optional[QualityPolicy] = None,
) -> Dict[str, int]:
    """Recompute `has_quality_transcript` for stored transcripts of one video or channel."""
    if not video_id and not channel_id:
        raise ValueError("video_id or channel_id is required")
    policy = policy or DEFAULT_POLICY
    video_ids = store.list_video_ids(channel_id=channel_id, video_id=video_id)
    summary = {"total": len(video_ids), "updated": 0, "errors": 0}
    for vid in video_ids:
        try:
            texts = store.transcript_texts(vid)
            if not texts:
                logger.warning("Video %s is flagged with a transcript but has no segments", vid)
                summary["errors"] += 1
                continue
            store.set_quality_flag(vid, policy.is_quality(texts))
            summary["updated"] += 1
        except Exception as exc:  # noqa: BLE001
            logger.warning("Quality recheck failed for video %s: %s", vid, exc)
            summary["errors"] += 1
    logger.info("Quality recheck finished: %s", summary)
    return summary


__all__ = [
    "QualityPolicy",
    "recheck_quality",
    "UniqueWordQualityPolicy",
    "DEFAULT_POLICY",
    "is_quality_transcript",
    "quality_reason",
]
