"""Services package: asset mirroring, embeddings, notifications and transcript upkeep."""

from .asset_mirror import AssetMirror
from .notifications import MailgunNotifier, RunMetrics
from .transcript_quality import UniqueWordQualityPolicy, is_quality_transcript, recheck_quality

__all__ = [
    "AssetMirror",
    "MailgunNotifier",
    "RunMetrics",
    "UniqueWordQualityPolicy",
    "is_quality_transcript",
    "recheck_quality",
]
