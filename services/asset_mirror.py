"""Mirror remote thumbnails and banners into Cloudflare R2 (S3-compatible)."""

from __future__ import annotations

import logging
from typing import Optional

import boto3
import requests
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from config.settings import (
    ASSET_DOWNLOAD_TIMEOUT_SECONDS,
    R2_ACCESS_KEY_ID,
    R2_BUCKET_NAME,
    R2_ENDPOINT,
    R2_PUBLIC_URL,
    R2_SECRET_ACCESS_KEY,
)

logger = logging.getLogger(__name__)

KEY_PREFIX = "fast-video-thumbnails"
_MISSING_CODES = {"404", "NotFound", "NoSuchKey"}


def video_thumbnail_key(youtube_video_id: str) -> str:
    return f"{KEY_PREFIX}/{youtube_video_id}.jpg"


def channel_thumbnail_key(youtube_channel_id: str) -> str:
    return f"{KEY_PREFIX}/channels/{youtube_channel_id}.jpg"


def channel_banner_key(youtube_channel_id: str) -> str:
    return f"{KEY_PREFIX}/banners/{youtube_channel_id}.jpg"


def join_public_url(base_url: str, key: str) -> str:
    return f"{base_url.rstrip('/')}/{key.lstrip('/')}"


def get_r2_client():
    """Create a boto3 S3 client pointed at the R2 endpoint."""
    if not (R2_ENDPOINT and R2_ACCESS_KEY_ID and R2_SECRET_ACCESS_KEY):
        raise ValueError("R2_ENDPOINT, R2_ACCESS_KEY_ID and R2_SECRET_ACCESS_KEY must be set to mirror assets.")
    return boto3.client(
        "s3",
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        region_name="auto",
        endpoint_url=R2_ENDPOINT,
        config=Config(s3={"addressing_style": "path"}),
    )


class AssetMirror:
    """Copies remote images into the bucket once and hands back their public URL."""

    def __init__(
        self,
        s3_client=None,
        *,
        bucket: Optional[str] = None,
        public_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = ASSET_DOWNLOAD_TIMEOUT_SECONDS,
    ):
        self._s3 = s3_client
        self._bucket = bucket if bucket is not None else R2_BUCKET_NAME
        self._public_url = public_url if public_url is not None else R2_PUBLIC_URL
        self._session = session or requests.Session()
        self._timeout = timeout

    @property
    def s3(self):
        if self._s3 is None:
            self._s3 = get_r2_client()
        return self._s3

    def public_url_for(self, key: str) -> str:
        return join_public_url(self._public_url, key)

    def _exists(self, key: str) -> bool:
        try:
            self.s3.head_object(Bucket=self._bucket, Key=key)
            return True
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                return False
            raise

    def mirror(self, key: str, remote_url: str, force_update: bool = False) -> str:
        """
        Return the public URL of `key`, uploading `remote_url` first when the
        object is missing (or `force_update` is set). Any failure falls back to
        `remote_url`.
        """
        if not remote_url:
            return remote_url
        try:
            if force_update:
                self.s3.delete_object(Bucket=self._bucket, Key=key)
            elif self._exists(key):
                return self.public_url_for(key)

            response = self._session.get(remote_url, timeout=self._timeout)
            response.raise_for_status()
            self.s3.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=response.content,
                ContentType=response.headers.get("Content-Type") or "image/jpeg",
            )
            url = self.public_url_for(key)
            logger.info("Mirrored %s to %s", remote_url, url)
            return url
        except (ClientError, BotoCoreError, requests.RequestException, ValueError) as exc:
            logger.warning("Failed to mirror %s to %s: %s", remote_url, key, exc)
            return remote_url

    def mirror_video_thumbnail(self, youtube_video_id: str, remote_url: str, force_update: bool = False) -> str:
        return self.mirror(video_thumbnail_key(youtube_video_id), remote_url, force_update)

    def mirror_channel_thumbnail(self, youtube_channel_id: str, remote_url: str, force_update: bool = False) -> str:
        return self.mirror(channel_thumbnail_key(youtube_channel_id), remote_url, force_update)

    def mirror_channel_banner(self, youtube_channel_id: str, remote_url: str, force_update: bool = False) -> str:
        return self.mirror(channel_banner_key(youtube_channel_id), remote_url, force_update)


__all__ = [
    "AssetMirror",
    "get_r2_client",
    "video_thumbnail_key",
    "channel_thumbnail_key",
    "channel_banner_key",
]
