from __future__ import annotations

import json
import unittest

from fastapi.testclient import TestClient

from catalog.jobs import ImportJobStore
from catalog.store import CatalogStore
from importer.channel_import import ChannelImporter
from importer.ingest import VideoIngestor
from importer.recent_import import RecentVideosImporter
from server import AppServices, build_app
from services.transcript_jobs import TranscriptJobProcessor
from tests.fakes import (
    FakeMirror,
    FakeSupabase,
    FakeTranscriptClient,
    FakeVideoSource,
    make_channel,
    make_segments,
    make_video,
)

AUTH = {"Authorization": "Bearer secret-token"}


class ServerTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db = FakeSupabase()
        self.store = CatalogStore(self.db)
        self.jobs = ImportJobStore(self.db)
        self.source = FakeVideoSource()
        self.source.add_channel(make_channel(), [make_video("v1"), make_video("v2")])
        self.transcripts = FakeTranscriptClient()
        self.transcripts.transcripts["v1"] = make_segments(12)
        ingestor = VideoIngestor(self.store, self.transcripts, FakeMirror())

        services = AppServices(
            store=lambda: self.store,
            jobs=lambda: self.jobs,
            channel_importer=lambda: ChannelImporter(self.store, self.source, ingestor),
            recent_importer=lambda: RecentVideosImporter(
                self.store, self.source, ingestor, generate_embeddings=False
            ),
            transcript_jobs=lambda: TranscriptJobProcessor(self.store, self.transcripts),
            admin_token="secret-token",
        )
        self.client = TestClient(build_app(services))

    def test_healthz_is_public(self) -> None:
        self.assertEqual(self.client.get("/healthz").json(), {"ok": True})

    def test_admin_routes_require_token(self) -> None:
        self.assertEqual(self.client.post("/api/admin/process-transcript-jobs").status_code, 401)
        response = self.client.post(
            "/api/admin/process-transcript-jobs", headers={"Authorization": "Bearer wrong"}
        )
        self.assertEqual(response.status_code, 403)

    def test_import_channel_streams_ndjson(self) -> None:
        response = self.client.post(
            "/api/admin/import-channel", json={"channelHandle": "@testchannel", "limit": 5}, headers=AUTH
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.headers["content-type"].startswith("application/x-ndjson"))
        events = [json.loads(line) for line in response.text.splitlines() if line]
        self.assertEqual(events[0]["type"], "status")
        self.assertEqual(events[-1]["type"], "complete")
        self.assertEqual(events[-1]["videosProcessed"], 2)
        self.assertEqual(events[-1]["transcriptsDownloaded"], 1)

    def test_import_channel_requires_handle(self) -> None:
        response = self.client.post("/api/admin/import-channel", json={}, headers=AUTH)
        self.assertEqual(response.status_code, 400)

    def test_preview(self) -> None:
        response = self.client.post(
            "/api/admin/import-channel/preview", json={"channelHandle": "testchannel"}, headers=AUTH
        )
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["channelExists"])
        self.assertEqual(response.json()["breakdown"]["newToImport"], 2)

        missing = self.client.post(
            "/api/admin/import-channel/preview", json={"channelHandle": "nobody"}, headers=AUTH
        )
        self.assertEqual(missing.status_code, 404)

    def test_background_import_job_lifecycle(self) -> None:
        channel = self.store.insert_channel(make_channel(), thumbnail_url="t", banner_url=None)

        response = self.client.post(f"/api/admin/channels/{channel.id}/import", json={"limit": 10}, headers=AUTH)
        self.assertEqual(response.status_code, 200)
        job_id = response.json()["jobId"]

        status = self.client.get(f"/api/admin/channels/{channel.id}/import/status", headers=AUTH).json()
        self.assertTrue(status["hasJob"])
        self.assertEqual(status["job"]["id"], job_id)
        self.assertEqual(status["job"]["status"], "completed")
        self.assertEqual(status["job"]["videosProcessed"], 2)

        logs = self.client.get(f"/api/admin/import-logs/{job_id}", headers=AUTH).json()
        self.assertEqual(logs["count"], 4)

    def test_background_import_conflict(self) -> None:
        channel = self.store.insert_channel(make_channel(), thumbnail_url="t", banner_url=None)
        active = self.jobs.create_job(channel.id, video_limit=10)

        response = self.client.post(f"/api/admin/channels/{channel.id}/import", json={}, headers=AUTH)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["detail"]["jobId"], active.id)

        cancelled = self.client.delete(f"/api/admin/channels/{channel.id}/import/status", headers=AUTH)
        self.assertEqual(cancelled.json()["jobId"], active.id)
        again = self.client.delete(f"/api/admin/channels/{channel.id}/import/status", headers=AUTH)
        self.assertEqual(again.status_code, 404)

    def test_background_import_unknown_channel(self) -> None:
        response = self.client.post("/api/admin/channels/missing/import", json={}, headers=AUTH)
        self.assertEqual(response.status_code, 404)

    def test_recent_import_and_stream(self) -> None:
        self.store.insert_channel(make_channel(), thumbnail_url="t", banner_url=None)
        payload = self.client.post("/api/admin/import-recent-videos", headers=AUTH).json()
        self.assertEqual(payload["status"], "complete")
        self.assertEqual(payload["metrics"]["channels"][0]["videosImported"], 2)

        response = self.client.post("/api/admin/import-recent-videos-stream", headers=AUTH)
        events = [json.loads(line) for line in response.text.splitlines() if line]
        self.assertTrue(all(event["type"] == "log" for event in events))
        self.assertIn("0 videos imported", events[-1]["message"])

    def test_process_transcript_jobs(self) -> None:
        payload = self.client.post("/api/admin/process-transcript-jobs", headers=AUTH).json()
        self.assertEqual(payload["processed"], 0)
        self.assertEqual(payload["stillProcessing"], 0)

    def test_fetch_transcript(self) -> None:
        channel = self.store.insert_channel(make_channel(), thumbnail_url="t", banner_url=None)
        self.store.insert_video(channel.id, make_video("v1"), thumbnail_url="t")
        body = {"channelId": channel.id, "youtubeVideoId": "v1"}

        response = self.client.post("/api/admin/fetch-transcript", json=body, headers=AUTH)
        self.assertTrue(response.json()["success"])
        self.assertTrue(response.json()["hasQualityTranscript"])
        self.assertEqual(response.json()["qualityReason"], "Quality transcript")

        missing = self.client.post(
            "/api/admin/fetch-transcript", json={"channelId": channel.id, "youtubeVideoId": "zz"}, headers=AUTH
        )
        self.assertEqual(missing.status_code, 404)

    def test_search_index_routes(self) -> None:
        self.db.insert_rows(
            "transcript_search_refresh_status",
            {"id": 1, "needs_refresh": True, "last_refreshed_at": None, "refresh_in_progress": False},
        )
        status = self.client.get("/api/admin/refresh-search-index", headers=AUTH).json()
        self.assertTrue(status["needsRefresh"])

        rebuilt = self.client.post("/api/admin/refresh-search-index", headers=AUTH).json()
        self.assertTrue(rebuilt["success"])
        self.assertEqual(self.db.rpc_calls[-1][0], "perform_transcript_search_refresh")

    def test_recheck_quality_requires_target(self) -> None:
        response = self.client.post("/api/admin/recheck-transcript-quality", json={}, headers=AUTH)
        self.assertEqual(response.status_code, 400)
        ok = self.client.post("/api/admin/recheck-transcript-quality", json={"channelId": "ch-1"}, headers=AUTH)
        self.assertEqual(ok.json()["summary"], {"total": 0, "updated": 0, "errors": 0})


if __name__ == "__main__":
    unittest.main()
