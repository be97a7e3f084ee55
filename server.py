"""FastAPI server exposing the admin import endpoints."""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import uvicorn
from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from catalog import CatalogStore, ImportJobStore, JobConflictError, get_catalog_store, get_job_store
from config.settings import ADMIN_API_TOKEN, LOG_LEVEL, SERVER_HOST, SERVER_PORT
from importer import build_channel_importer, build_recent_importer
from importer.channel_import import ChannelImporter, ImportOptions, run_import_job, stream_import
from importer.progress import stream_events
from importer.recent_import import RecentVideosImporter
from services.embeddings import EmbeddingService
from services.transcript_jobs import TranscriptJobProcessor
from services.transcript_quality import recheck_quality
from sources.transcripts import SupadataTranscriptClient

logger = logging.getLogger(__name__)

NDJSON = "application/x-ndjson"


@dataclass
class AppServices:
    """Collaborators behind the endpoints; tests swap in fakes."""

    store: Callable[[], CatalogStore] = get_catalog_store
    jobs: Callable[[], ImportJobStore] = get_job_store
    channel_importer: Callable[[], ChannelImporter] = build_channel_importer
    recent_importer: Callable[[], RecentVideosImporter] = build_recent_importer
    transcript_jobs: Optional[Callable[[], TranscriptJobProcessor]] = None
    embeddings: Optional[Callable[[], EmbeddingService]] = None
    admin_token: str = field(default=ADMIN_API_TOKEN)

    def transcript_job_processor(self) -> TranscriptJobProcessor:
        if self.transcript_jobs:
            return self.transcript_jobs()
        return TranscriptJobProcessor(self.store(), SupadataTranscriptClient())

    def embedding_service(self) -> EmbeddingService:
        if self.embeddings:
            return self.embeddings()
        return EmbeddingService(self.store())


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ImportChannelBody(_Body):
    channel_handle: Optional[str] = Field(default=None, alias="channelHandle")
    limit: Optional[int] = None
    include_live_videos: bool = Field(default=False, alias="includeLiveVideos")
    skip_transcripts: bool = Field(default=False, alias="skipTranscripts")
    transcripts_only: bool = Field(default=False, alias="transcriptsOnly")
    tenant_id: Optional[str] = Field(default=None, alias="tenantId")


class BackgroundImportBody(_Body):
    limit: Optional[int] = None
    include_live_videos: bool = Field(default=False, alias="includeLiveVideos")
    skip_transcripts: bool = Field(default=False, alias="skipTranscripts")


class VideoRefBody(_Body):
    channel_id: Optional[str] = Field(default=None, alias="channelId")
    youtube_video_id: Optional[str] = Field(default=None, alias="youtubeVideoId")


class RecheckBody(_Body):
    video_id: Optional[str] = Field(default=None, alias="videoId")
    channel_id: Optional[str] = Field(default=None, alias="channelId")


class EmbeddingBody(_Body):
    video_id: Optional[str] = Field(default=None, alias="videoId")
    batch_size: int = Field(default=50, alias="batchSize")


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def require_admin(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> bool:
    token = get_services(request).admin_token
    if not token:
        return True
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail={"error": "missing bearer token"})
    supplied = authorization.split(" ", 1)[1].strip()
    if not hmac.compare_digest(supplied, token):
        raise HTTPException(status_code=403, detail={"error": "invalid token"})
    return True


def _require(value: Optional[str], message: str) -> str:
    if not value:
        raise HTTPException(status_code=400, detail={"error": message})
    return value


def build_router() -> APIRouter:
    router = APIRouter(dependencies=[Depends(require_admin)])

    @router.post("/api/admin/import-channel")
    def import_channel(body: ImportChannelBody, services: AppServices = Depends(get_services)):
        handle = _require(body.channel_handle, "Channel handle is required")
        options = ImportOptions(
            channel_handle=handle,
            limit=body.limit,
            include_live_videos=body.include_live_videos,
            skip_transcripts=body.skip_transcripts,
            transcripts_only=body.transcripts_only,
            tenant_id=body.tenant_id,
        )
        return StreamingResponse(stream_import(services.channel_importer(), options), media_type=NDJSON)

    @router.post("/api/admin/import-channel/preview")
    def preview_channel(body: ImportChannelBody, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
        handle = _require(body.channel_handle, "Channel handle is required")
        preview = services.channel_importer().preview_channel(handle, body.limit, body.include_live_videos)
        if preview is None:
            raise HTTPException(status_code=404, detail={"error": "Channel not found on YouTube"})
        return preview

    @router.post("/api/admin/channels/{channel_id}/import")
    def start_background_import(
        channel_id: str,
        body: BackgroundImportBody,
        background_tasks: BackgroundTasks,
        services: AppServices = Depends(get_services),
    ) -> Dict[str, Any]:
        channel = services.store().get_channel(channel_id)
        if channel is None:
            raise HTTPException(status_code=404, detail={"error": "Channel not found"})
        handle = channel.youtube_channel_handle or channel.channel_handle
        if not handle:
            raise HTTPException(status_code=400, detail={"error": "Channel has no YouTube handle"})
        options = ImportOptions(
            channel_handle=handle,
            limit=body.limit,
            include_live_videos=body.include_live_videos,
            skip_transcripts=body.skip_transcripts,
            tenant_id=channel.tenant_id,
        )
        jobs = services.jobs()
        try:
            job = jobs.create_job(
                channel_id,
                video_limit=options.limit,
                include_live_videos=options.include_live_videos,
                skip_transcripts=options.skip_transcripts,
            )
        except JobConflictError as exc:
            raise HTTPException(
                status_code=409,
                detail={"error": "Import already in progress for this channel", "jobId": exc.job_id},
            ) from exc
        background_tasks.add_task(run_import_job, services.channel_importer(), jobs, job.id, options)
        return {"success": True, "jobId": job.id, "message": "Import started in background"}

    @router.get("/api/admin/channels/{channel_id}/import/status")
    def import_status(channel_id: str, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
        job = services.jobs().latest_job(channel_id)
        if job is None:
            return {"hasJob": False}
        return {"hasJob": True, "job": job.as_status_payload()}

    @router.delete("/api/admin/channels/{channel_id}/import/status")
    def cancel_import(channel_id: str, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
        job_id = services.jobs().cancel(channel_id)
        if job_id is None:
            raise HTTPException(status_code=404, detail={"error": "No running import found"})
        return {"success": True, "jobId": job_id, "message": "Import cancelled"}

    @router.get("/api/admin/import-logs/{job_id}")
    def import_logs(job_id: str, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
        logs = services.jobs().job_logs(job_id)
        return {"jobId": job_id, "logs": logs, "count": len(logs)}

    @router.api_route("/api/admin/import-recent-videos", methods=["GET", "POST"])
    def import_recent_videos(services: AppServices = Depends(get_services)) -> Dict[str, Any]:
        return services.recent_importer().run().as_payload()

    @router.post("/api/admin/import-recent-videos-stream")
    def import_recent_videos_stream(services: AppServices = Depends(get_services)):
        importer = services.recent_importer()
        return StreamingResponse(stream_events(lambda sink: importer.run(sink)), media_type=NDJSON)

    @router.post("/api/admin/process-transcript-jobs")
    def process_transcript_jobs(services: AppServices = Depends(get_services)) -> Dict[str, Any]:
        counts = services.transcript_job_processor().process_pending()
        return {
            "message": f"Processed {counts['total_processed']} jobs",
            "processed": counts["total_processed"],
            "completed": counts["completed"],
            "failed": counts["failed"],
            "stillProcessing": counts["still_processing"],
        }

    @router.post("/api/admin/refresh-search-index")
    def rebuild_search_index(services: AppServices = Depends(get_services)) -> Dict[str, Any]:
        try:
            result = services.store().rebuild_search_index()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Full search index refresh failed")
            raise HTTPException(status_code=500, detail={"error": f"Refresh failed: {exc}"}) from exc
        return {"success": True, "result": result}

    @router.get("/api/admin/refresh-search-index")
    def search_index_status(services: AppServices = Depends(get_services)) -> Dict[str, Any]:
        status = services.store().search_index_status()
        if status is None:
            raise HTTPException(status_code=404, detail={"error": "Refresh status not found"})
        return {
            "needsRefresh": status.get("needs_refresh"),
            "lastRefreshedAt": status.get("last_refreshed_at"),
            "refreshInProgress": status.get("refresh_in_progress"),
        }

    @router.post("/api/admin/fetch-transcript")
    def fetch_transcript(body: VideoRefBody, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
        channel_id = _require(body.channel_id, "Channel ID and YouTube video ID are required")
        youtube_id = _require(body.youtube_video_id, "Channel ID and YouTube video ID are required")
        try:
            result = services.channel_importer().refresh_transcript(channel_id, youtube_id)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Transcript refresh failed for %s", youtube_id)
            raise HTTPException(status_code=500, detail={"error": "Failed to save transcript"}) from exc
        if result is None:
            raise HTTPException(status_code=404, detail={"error": "Video not found"})
        if not result.transcript_written:
            return {"success": False, "message": "No transcript available for this video"}
        return {
            "success": True,
            "videoId": result.video_id,
            "hasQualityTranscript": result.quality,
            "qualityReason": result.quality_reason,
        }

    @router.post("/api/admin/import-video")
    def import_video(body: VideoRefBody, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
        channel_id = _require(body.channel_id, "Channel ID and YouTube video ID are required")
        youtube_id = _require(body.youtube_video_id, "Channel ID and YouTube video ID are required")
        result = services.channel_importer().import_single_video(channel_id, youtube_id)
        if result is None:
            raise HTTPException(status_code=404, detail={"error": "Video not found on YouTube"})
        return {"success": True, "videoId": result.video_id, "hasTranscript": result.transcript_written}

    @router.post("/api/admin/recheck-transcript-quality")
    def recheck_transcript_quality(body: RecheckBody, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
        if not body.video_id and not body.channel_id:
            raise HTTPException(status_code=400, detail={"error": "videoId or channelId parameter required"})
        summary = recheck_quality(services.store(), video_id=body.video_id, channel_id=body.channel_id)
        return {"success": True, "summary": summary}

    @router.post("/api/embeddings/generate")
    def generate_embeddings(body: EmbeddingBody, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
        video_id = _require(body.video_id, "Video ID is required")
        result = services.embedding_service().generate_for_video(video_id, batch_size=body.batch_size)
        return {
            "message": f"Generated embeddings for {result['processed']} transcripts",
            "processed": result["processed"],
            "total": result["total"],
        }

    @router.get("/api/embeddings/generate")
    def embedding_status(
        video_id: Optional[str] = Query(None, alias="videoId"),
        services: AppServices = Depends(get_services),
    ) -> Dict[str, Any]:
        return services.embedding_service().embedding_status(_require(video_id, "Video ID is required"))

    return router


def build_app(services: Optional[AppServices] = None) -> FastAPI:
    """Construct the FastAPI app; pass `services` to replace the live collaborators."""
    app = FastAPI(title="Channel Import Service")
    app.state.services = services or AppServices()

    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return {"ok": True}

    app.include_router(build_router())
    return app


def main() -> None:
    """Main entry point used by `python3 server.py`."""
    logger.info("Starting import server on %s:%s", SERVER_HOST, SERVER_PORT)
    uvicorn.run(build_app(), host=SERVER_HOST, port=SERVER_PORT)


if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL)
    main()
