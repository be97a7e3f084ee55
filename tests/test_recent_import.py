from __future__ import annotations

import unittest
from datetime import datetime, timezone
from typing import List

from catalog.store import CatalogStore
from importer.deadline import Deadline
from importer.ingest import VideoIngestor
from importer.recent_import import RecentVideosImporter
from services.notifications import RunMetrics
from tests.fakes import (
    FakeMirror,
    FakeSupabase,
    FakeTranscriptClient,
    FakeVideoSource,
    ManualClock,
    make_channel,
    make_segments,
    make_video,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


class _FakeNotifier:
    def __init__(self):
        self.started = 0
        self.completed: List[RunMetrics] = []

    def send_job_started(self) -> bool:
        self.started += 1
        return True

    def send_job_completed(self, metrics: RunMetrics) -> bool:
        self.completed.append(metrics)
        return True


class RecentVideosImporterTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db = FakeSupabase()
        self.store = CatalogStore(self.db)
        self.source = FakeVideoSource()
        self.transcripts = FakeTranscriptClient()
        self.notifier = _FakeNotifier()
        ingestor = VideoIngestor(self.store, self.transcripts, FakeMirror())
        self.importer = RecentVideosImporter(
            self.store, self.source, ingestor, self.notifier, window_hours=672, generate_embeddings=False
        )

        self.source.add_channel(
            make_channel("alpha", "UCalpha"),
            [make_video("a-new", 1), make_video("a-old", 60), make_video("a-live", 2, is_live=True)],
        )
        self.source.add_channel(make_channel("beta", "UCbeta"), [make_video("b-new", 3)])
        self.alpha = self.store.insert_channel(make_channel("alpha", "UCalpha"), thumbnail_url="t", banner_url=None)
        self.db.insert_rows(
            "channels",
            {"channel_name": "Beta", "channel_handle": "beta", "youtube_channel_handle": "beta", "youtube_channel_id": None},
        )
        for video_id in ("a-new", "a-live", "b-new"):
            self.transcripts.transcripts[video_id] = make_segments(12)

    def test_imports_recent_videos_for_every_channel(self) -> None:
        result = self.importer.run(now=NOW)

        self.assertEqual(result.status, "complete")
        imported = sorted(row["youtube_video_id"] for row in self.db.rows("videos"))
        self.assertEqual(imported, ["a-live", "a-new", "b-new"])
        self.assertEqual(result.metrics.total_imported, 3)
        self.assertEqual(result.metrics.errors, [])
        self.assertEqual(self.notifier.started, 1)
        self.assertEqual(self.notifier.completed[0].total_imported, 3)
        self.assertEqual(len(self.db.rpc_calls[-1][1]["p_video_ids"]), 3)

    def test_missing_youtube_id_is_resolved_and_saved(self) -> None:
        self.importer.run(now=NOW)
        beta = self.db.rows("channels", channel_handle="beta")[0]
        self.assertEqual(beta["youtube_channel_id"], "UCbeta")

    def test_existing_videos_are_skipped(self) -> None:
        self.store.insert_video(self.alpha.id, make_video("a-new", 1), thumbnail_url="t")
        result = self.importer.run(now=NOW)
        self.assertEqual(result.metrics.total_imported, 2)
        self.assertEqual(len(self.db.rows("videos", youtube_video_id="a-new")), 1)

    def test_missing_transcript_is_reported(self) -> None:
        del self.transcripts.transcripts["b-new"]
        result = self.importer.run(now=NOW)
        self.assertEqual(result.metrics.errors, ["Beta: No transcript available for Video b-new"])

    def test_unresolvable_channel_is_reported(self) -> None:
        self.db.insert_rows("channels", {"channel_name": "Ghost", "channel_handle": "ghost"})
        result = self.importer.run(now=NOW)
        self.assertIn("Ghost: Could not resolve YouTube channel from handle", result.metrics.errors)

    def test_deadline_makes_run_partial(self) -> None:
        clock = ManualClock()
        deadline = Deadline(1, clock=clock)
        self.transcripts.fetch_transcript = self._ticking_fetch(clock)

        result = self.importer.run(deadline=deadline, now=NOW)

        self.assertEqual(result.status, "partial")
        self.assertEqual(len(self.db.rows("videos")), 1)
        self.assertEqual(result.as_payload()["status"], "partial")
        self.assertEqual(len(self.notifier.completed), 1)

    def _ticking_fetch(self, clock: ManualClock):
        original = self.transcripts.fetch_transcript

        def fetch(video_id, prefer_native=False, job_recorder=None):
            clock.advance(1)
            return original(video_id, prefer_native, job_recorder)

        return fetch


class RunMetricsTest(unittest.TestCase):
    def test_payload_uses_camel_case(self) -> None:
        metrics = RunMetrics(elapsed_time_ms=1500)
        metrics.errors.append("x")
        payload = metrics.as_payload()
        self.assertEqual(payload, {"channels": [], "errors": ["x"], "elapsedTimeMs": 1500})


if __name__ == "__main__":
    unittest.main()
