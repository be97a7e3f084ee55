"""External sources: YouTube listings and Supadata transcripts."""

from .models import ChannelInfo, TranscriptSegment, VideoInfo
from .transcripts import SupadataTranscriptClient, TranscriptJobStatus, TranscriptServiceError
from .youtube import YouTubeVideoSource, merge_live_and_regular

__all__ = [
    "ChannelInfo",
    "TranscriptSegment",
    "VideoInfo",
    "SupadataTranscriptClient",
    "TranscriptJobStatus",
    "TranscriptServiceError",
    "YouTubeVideoSource",
    "merge_live_and_regular",
]
