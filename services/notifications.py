"""Operator email notifications sent through the Mailgun HTTP API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests
from pydantic import BaseModel, Field

from config.settings import (
    MAILGUN_API_KEY,
    MAILGUN_BASE_URL,
    MAILGUN_DOMAIN,
    NOTIFY_FROM_EMAIL,
    NOTIFY_TO_EMAIL,
)

logger = logging.getLogger(__name__)


class ChannelImportCount(BaseModel):
    channel_name: str = Field(..., serialization_alias="channelName")
    videos_imported: int = Field(default=0, serialization_alias="videosImported")


class RunMetrics(BaseModel):
    """Outcome of one recent-videos run, reported by email and over HTTP."""

    channels: List[ChannelImportCount] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    elapsed_time_ms: int = Field(default=0, serialization_alias="elapsedTimeMs")

    @property
    def total_imported(self) -> int:
        return sum(channel.videos_imported for channel in self.channels)

    def as_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


def _format_elapsed(ms: int) -> str:
    seconds = ms / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s"


class MailgunNotifier:
    """Sends plain-text job emails. Delivery problems are logged, never raised."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        domain: str = MAILGUN_DOMAIN,
        base_url: str = MAILGUN_BASE_URL,
        sender: str = NOTIFY_FROM_EMAIL,
        recipient: str = NOTIFY_TO_EMAIL,
        session: Optional[requests.Session] = None,
    ):
        self._api_key = api_key if api_key is not None else MAILGUN_API_KEY
        self._domain = domain
        self._base_url = base_url.rstrip("/")
        self._sender = sender
        self._recipient = recipient
        self._session = session or requests.Session()

    def send(self, subject: str, text: str) -> bool:
        if not self._api_key:
            logger.info("MAILGUN_API_KEY not set; skipping email '%s'", subject)
            return False
        try:
            response = self._session.post(
                f"{self._base_url}/v3/{self._domain}/messages",
                auth=("api", self._api_key),
                data={"from": self._sender, "to": [self._recipient], "subject": subject, "text": text},
                timeout=15,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Failed to send email '%s': %s", subject, exc)
            return False
        logger.info("Sent email '%s'", subject)
        return True

    def send_job_started(self) -> bool:
        return self.send("FV: Video import job started", "The scheduled recent-videos import has started.")

    def send_job_completed(self, metrics: RunMetrics) -> bool:
        touched = [channel for channel in metrics.channels if channel.videos_imported > 0]
        lines = [
            f"Channels processed: {len(metrics.channels)}",
            f"Videos imported: {metrics.total_imported}",
            f"Errors: {len(metrics.errors)}",
            f"Elapsed: {_format_elapsed(metrics.elapsed_time_ms)}",
        ]
        if touched:
            lines.append("")
            lines.append("Imported per channel:")
            lines.extend(f"  {channel.channel_name}: {channel.videos_imported}" for channel in touched)
        if metrics.errors:
            lines.append("")
            lines.append("Errors:")
            lines.extend(f"  {error}" for error in metrics.errors)
        subject = f"FV: Video import job completed ({metrics.total_imported} new videos)"
        return self.send(subject, "\n".join(lines))


__all__ = ["MailgunNotifier", "RunMetrics", "ChannelImportCount"]
