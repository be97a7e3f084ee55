"""Progress events and the sinks that deliver them (stream, job table, callbacks)."""

from __future__ import annotations

import json
import logging
import queue
import threading
from typing import Any, Callable, Dict, Iterable, Iterator, List, Literal, Optional

from pydantic import BaseModel, Field

from catalog.jobs import ImportJobStore
from catalog.models import ImportAction, ImportLogRecord
from sources.models import VideoInfo
from sources.youtube.time_utils import parse_relative_time

logger = logging.getLogger(__name__)

EventType = Literal["status", "progress", "complete", "error", "log"]

STREAM_BUFFER_SIZE = 1000
_PUT_POLL_SECONDS = 0.5


class ProgressEvent(BaseModel):
    """One line of an import stream."""

    type: EventType
    message: Optional[str] = Field(default=None)
    current: Optional[int] = Field(default=None)
    total: Optional[int] = Field(default=None)
    video_title: Optional[str] = Field(default=None, serialization_alias="videoTitle")
    channel: Optional[Dict[str, Any]] = Field(default=None)
    videos_processed: Optional[int] = Field(default=None, serialization_alias="videosProcessed")
    transcripts_downloaded: Optional[int] = Field(default=None, serialization_alias="transcriptsDownloaded")
    embeddings_generated: Optional[int] = Field(default=None, serialization_alias="embeddingsGenerated")
    stopped_early: Optional[bool] = Field(default=None, serialization_alias="stoppedEarly")

    @classmethod
    def status(cls, message: str) -> "ProgressEvent":
        return cls(type="status", message=message)

    @classmethod
    def progress(cls, current: int, total: int, video_title: str) -> "ProgressEvent":
        return cls(type="progress", current=current, total=total, video_title=video_title)

    @classmethod
    def error(cls, message: str) -> "ProgressEvent":
        return cls(type="error", message=message)

    @classmethod
    def log(cls, message: str) -> "ProgressEvent":
        return cls(type="log", message=message)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(by_alias=True, exclude_none=True), ensure_ascii=False)


class ProgressSink:
    """Receives events and per-video audit actions. The base implementation drops everything."""

    def emit(self, event: ProgressEvent) -> None:
        return None

    def record(self, action: ImportAction, video: VideoInfo, video_id: Optional[str] = None) -> None:
        return None


class NullSink(ProgressSink):
    pass


class CallbackSink(ProgressSink):
    def __init__(self, callback: Callable[[ProgressEvent], None]):
        self._callback = callback

    def emit(self, event: ProgressEvent) -> None:
        self._callback(event)


class QueueSink(ProgressSink):
    """
    Puts events on a queue consumed by a streaming response. Once `closed` is
    set (the consumer went away) events are dropped instead of waiting for room.
    """

    def __init__(
        self,
        events: "queue.Queue[Optional[ProgressEvent]]",
        closed: Optional[threading.Event] = None,
    ):
        self._events = events
        self._closed = closed or threading.Event()

    def put(self, item: Optional[ProgressEvent]) -> None:
        while not self._closed.is_set():
            try:
                self._events.put(item, timeout=_PUT_POLL_SECONDS)
                return
            except queue.Full:
                continue

    def emit(self, event: ProgressEvent) -> None:
        self.put(event)


class CompositeSink(ProgressSink):
    def __init__(self, sinks: Iterable[ProgressSink]):
        self._sinks: List[ProgressSink] = list(sinks)

    def emit(self, event: ProgressEvent) -> None:
        for sink in self._sinks:
            sink.emit(event)

    def record(self, action: ImportAction, video: VideoInfo, video_id: Optional[str] = None) -> None:
        for sink in self._sinks:
            sink.record(action, video, video_id)


class JobTableSink(ProgressSink):
    """Mirrors progress into a `channel_import_jobs` row and appends audit log rows."""

    def __init__(self, jobs: ImportJobStore, job_id: str):
        self._jobs = jobs
        self._job_id = job_id
        self._transcripts = 0

    def _update(self, changes: dict) -> None:
        try:
            self._jobs.update_job(self._job_id, changes)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to update import job %s: %s", self._job_id, exc)

    def emit(self, event: ProgressEvent) -> None:
        if event.type == "status":
            self._update({"progress": {"message": event.message}})
        elif event.type == "progress":
            # `current` is the video about to start; the final count comes with `complete`
            self._update(
                {
                    "videos_total": event.total,
                    "videos_processed": max(0, (event.current or 1) - 1),
                    "current_video_title": event.video_title,
                    "progress": {"message": f"Processing {event.current}/{event.total}: {event.video_title}"},
                }
            )
        elif event.type == "complete":
            self._update(
                {
                    "videos_processed": event.videos_processed or 0,
                    "transcripts_downloaded": event.transcripts_downloaded or 0,
                    "embeddings_generated": event.embeddings_generated or 0,
                    "current_video_title": None,
                }
            )

    def record(self, action: ImportAction, video: VideoInfo, video_id: Optional[str] = None) -> None:
        if action == "transcript_downloaded":
            self._transcripts += 1
            self._update({"transcripts_downloaded": self._transcripts})
        try:
            self._jobs.append_log(
                ImportLogRecord(
                    job_id=self._job_id,
                    video_id=video_id,
                    youtube_video_id=video.video_id,
                    video_title=video.title,
                    video_published_at=parse_relative_time(video.published_at),
                    action_type=action,
                )
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to write import log for %s: %s", video.video_id, exc)


def stream_events(run: Callable[[ProgressSink], Any], buffer_size: int = STREAM_BUFFER_SIZE) -> Iterator[str]:
    """
    Run `run(sink)` on a worker thread and yield each emitted event as an
    NDJSON line. An exception escaping `run` becomes a final error line unless
    the run already reported its own error.

    Closing the generator early does not stop the run; the worker finishes
    with its remaining events discarded.
    """
    events: "queue.Queue[Optional[ProgressEvent]]" = queue.Queue(maxsize=buffer_size)
    closed = threading.Event()
    sink = QueueSink(events, closed)
    errored = threading.Event()

    class _TrackingSink(ProgressSink):
        def emit(self, event: ProgressEvent) -> None:
            if event.type == "error":
                errored.set()
            sink.emit(event)

    def _worker() -> None:
        try:
            run(_TrackingSink())
        except Exception as exc:  # noqa: BLE001
            logger.exception("Streamed run failed")
            if not errored.is_set():
                sink.put(ProgressEvent.error(str(exc)))
        finally:
            sink.put(None)

    worker = threading.Thread(target=_worker, name="import-stream", daemon=True)
    worker.start()
    try:
        while True:
            event = events.get()
            if event is None:
                break
            yield event.to_json() + "\n"
    finally:
        closed.set()
    worker.join()


__all__ = [
    "ProgressEvent",
    "ProgressSink",
    "NullSink",
    "CallbackSink",
    "QueueSink",
    "CompositeSink",
    "JobTableSink",
    "stream_events",
]
