"""YouTube Data API access: client helpers, channel listing and time parsing."""

from .channels import YouTubeVideoSource, banner_from_avatar, merge_live_and_regular
from .client import execute_request, get_youtube_service, redact_request_uri
from .time_utils import (
    format_rfc3339,
    is_within_hours,
    parse_iso8601_duration,
    parse_relative_time,
)

__all__ = [
    "YouTubeVideoSource",
    "banner_from_avatar",
    "merge_live_and_regular",
    "execute_request",
    "get_youtube_service",
    "redact_request_uri",
    "format_rfc3339",
    "is_within_hours",
    "parse_iso8601_duration",
    "parse_relative_time",
]
