from __future__ import annotations

import unittest
from typing import List

from catalog.jobs import ImportJobStore
from catalog.store import CatalogStore
from importer.channel_import import (
    ChannelImporter,
    ChannelImportError,
    ImportOptions,
    clamp_limit,
    run_import_job,
    stream_import,
)
from importer.deadline import Deadline
from importer.ingest import VideoIngestor
from importer.progress import CallbackSink, ProgressEvent
from sources.models import TranscriptSegment
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


class _FakeEmbeddings:
    def __init__(self):
        self.videos: List[str] = []

    def generate_all(self, video_id: str) -> int:
        self.videos.append(video_id)
        return 4


class ChannelImporterTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db = FakeSupabase()
        self.store = CatalogStore(self.db)
        self.source = FakeVideoSource()
        self.transcripts = FakeTranscriptClient()
        self.mirror = FakeMirror()
        self.embeddings = _FakeEmbeddings()
        self.videos = [make_video(f"v{i}", days_ago=i) for i in range(1, 6)]
        self.source.add_channel(make_channel(), self.videos)
        for video in self.videos:
            self.transcripts.transcripts[video.video_id] = make_segments(20)
        ingestor = VideoIngestor(self.store, self.transcripts, self.mirror, self.embeddings)
        self.importer = ChannelImporter(self.store, self.source, ingestor)
        self.events: List[ProgressEvent] = []
        self.sink = CallbackSink(self.events.append)

    def _run(self, **options) -> object:
        params = {"channel_handle": "@testchannel", "limit": 50}
        params.update(options)
        return self.importer.import_channel(ImportOptions(**params), self.sink)

    def test_imports_new_channel_and_videos(self) -> None:
        summary = self._run()

        channels = self.db.rows("channels")
        self.assertEqual(len(channels), 1)
        self.assertEqual(channels[0]["thumbnail_url"], "https://cdn.example.com/channels/UCtest123.jpg")
        self.assertEqual(channels[0]["video_count"], 5)
        self.assertEqual(summary.videos_processed, 5)
        self.assertEqual(summary.transcripts_downloaded, 5)
        self.assertEqual(summary.embeddings_generated, 20)
        videos = self.db.rows("videos")
        self.assertEqual(len(videos), 5)
        self.assertTrue(all(video["has_transcript"] for video in videos))
        self.assertTrue(all(video["thumbnail_url"].startswith("https://cdn.example.com/") for video in videos))
        self.assertEqual(len(self.db.rows("transcripts")), 100)

        refresh = self.db.rpc_calls[-1]
        self.assertEqual(refresh[0], "refresh_transcript_search_for_videos")
        self.assertEqual(len(refresh[1]["p_video_ids"]), 5)

        self.assertEqual(self.events[-1].type, "complete")
        self.assertEqual(self.events[-1].channel["id"], channels[0]["id"])
        progress = [event for event in self.events if event.type == "progress"]
        self.assertEqual([event.current for event in progress], [1, 2, 3, 4, 5])
        self.assertEqual(progress[0].video_title, "Video v1")

    def test_second_run_is_idempotent(self) -> None:
        self._run()
        self.db.rpc_calls.clear()
        summary = self._run()

        self.assertEqual(len(self.db.rows("channels")), 1)
        self.assertEqual(len(self.db.rows("videos")), 5)
        self.assertEqual(summary.videos_processed, 0)
        self.assertEqual(self.db.rpc_calls, [])

    def test_existing_channel_keeps_its_name(self) -> None:
        self.db.insert_rows(
            "channels",
            {"channel_handle": "local", "youtube_channel_handle": "testchannel", "channel_name": "Custom Name"},
        )
        self._run(limit=1)
        channel = self.db.rows("channels")[0]
        self.assertEqual(channel["channel_name"], "Custom Name")
        self.assertEqual(channel["subscriber_count"], 1200)
        self.assertEqual(len(self.db.rows("channels")), 1)

    def test_count_mismatch_leaves_transcript_flag_false(self) -> None:
        self.transcripts.transcripts["v1"] = make_segments(100)
        self.db.insert_hooks["transcripts"] = lambda rows: rows[:-5] if len(rows) == 100 else rows

        summary = self._run()

        row = self.db.rows("videos", youtube_video_id="v1")[0]
        self.assertFalse(row["has_transcript"])
        self.assertEqual(summary.videos_processed, 5)
        self.assertEqual(summary.transcripts_downloaded, 4)

        # the next run backfills the transcript and removes the partial rows
        del self.db.insert_hooks["transcripts"]
        summary = self._run()
        row = self.db.rows("videos", youtube_video_id="v1")[0]
        self.assertTrue(row["has_transcript"])
        self.assertEqual(len(self.db.rows("transcripts", video_id=row["id"])), 100)
        self.assertEqual(summary.transcripts_downloaded, 1)

    def test_backfill_after_new_imports_within_limit(self) -> None:
        self.transcripts.transcripts.pop("v4")
        self.transcripts.transcripts.pop("v5")
        self._run()
        self.transcripts.transcripts["v4"] = make_segments(5)
        self.transcripts.transcripts["v5"] = make_segments(5)
        self.source.videos["UCtest123"] = [make_video("new", days_ago=0)] + self.videos

        events_before = len(self.events)
        summary = self._run(limit=2)

        titles = [event.video_title for event in self.events[events_before:] if event.type == "progress"]
        self.assertEqual(titles, ["Video new", "Video v4 [TRANSCRIPT ONLY]"])
        self.assertEqual(summary.videos_processed, 2)

    def test_transcripts_only_skips_new_videos(self) -> None:
        self._run(skip_transcripts=True)
        self.source.videos["UCtest123"].append(make_video("fresh", days_ago=0))
        summary = self._run(transcripts_only=True)
        self.assertEqual(summary.transcripts_downloaded, 5)
        self.assertEqual(len(self.db.rows("videos")), 5)

    def test_skip_transcripts(self) -> None:
        summary = self._run(skip_transcripts=True)
        self.assertEqual(summary.transcripts_downloaded, 0)
        self.assertEqual(self.transcripts.fetched, [])

    def test_music_channel_never_fetches_transcripts(self) -> None:
        self.db.insert_rows(
            "channels",
            {"channel_handle": "testchannel", "youtube_channel_id": "UCtest123", "is_music_channel": True},
        )
        summary = self._run()
        self.assertEqual(summary.videos_processed, 5)
        self.assertEqual(self.transcripts.fetched, [])

    def test_live_videos_are_labelled(self) -> None:
        self.source.videos["UCtest123"].append(make_video("live1", days_ago=30, is_live=True))
        self._run(include_live_videos=True, limit=1)
        progress = [event for event in self.events if event.type == "progress"]
        self.assertEqual(progress[0].video_title, "Video live1 [LIVE]")

    def test_async_transcript_job_recorded(self) -> None:
        self.transcripts.async_jobs["v1"] = "job-1"
        self._run()
        jobs = self.db.rows("transcript_jobs")
        self.assertEqual(len(jobs), 1)
        self.assertEqual(jobs[0]["youtube_video_id"], "v1")
        self.assertEqual(jobs[0]["video_id"], self.db.rows("videos", youtube_video_id="v1")[0]["id"])

    def test_deadline_stops_between_videos(self) -> None:
        clock = ManualClock()

        def tick(event: ProgressEvent) -> None:
            self.events.append(event)
            if event.type == "progress":
                clock.advance(1)

        summary = self.importer.import_channel(
            ImportOptions(channel_handle="testchannel"), CallbackSink(tick), Deadline(2.5, clock=clock)
        )
        self.assertTrue(summary.stopped_early)
        self.assertEqual(summary.videos_processed, 3)
        self.assertTrue(self.events[-1].stopped_early)

    def test_unknown_channel_reports_error(self) -> None:
        with self.assertRaises(ChannelImportError):
            self._run(channel_handle="@nobody")
        self.assertEqual(self.events[-1].type, "error")
        self.assertEqual(self.events[-1].message, "Channel not found")
        self.assertEqual(self.db.rows("channels"), [])

    def test_blank_handle_is_rejected_before_lookup(self) -> None:
        with self.assertRaises(ChannelImportError):
            self._run(channel_handle=" @ ")
        self.assertEqual(self.events[-1].message, "Channel handle is required")
        self.assertEqual(self.source.resolve_calls, [])
        self.assertIsNone(self.importer.preview_channel("@"))

    def test_failing_video_does_not_abort_run(self) -> None:
        self.db.failures[("transcripts", "delete")] = RuntimeError("db down")
        summary = self._run()
        self.assertEqual(len(self.db.rows("videos")), 5)
        self.assertEqual(summary.transcripts_downloaded, 0)
        self.assertEqual(self.events[-1].type, "complete")

    def test_preview_writes_nothing(self) -> None:
        self._run(limit=2)
        calls_before = [call for call in self.db.calls if call[1] != "select"]
        preview = self.importer.preview_channel("testchannel")
        self.assertEqual([call for call in self.db.calls if call[1] != "select"], calls_before)
        self.assertTrue(preview["channelExists"])
        self.assertEqual(preview["breakdown"]["totalOnYouTube"], 5)
        self.assertEqual(preview["breakdown"]["alreadyImported"], 2)
        self.assertEqual(preview["breakdown"]["newToImport"], 3)
        self.assertEqual(len(preview["videos"]), 3)
        self.assertIsNone(self.importer.preview_channel("nobody"))

    def test_refresh_transcript_and_single_video(self) -> None:
        channel = self.store.insert_channel(make_channel(), thumbnail_url="t", banner_url=None)
        self.assertIsNone(self.importer.refresh_transcript(channel.id, "v1"))

        result = self.importer.import_single_video(channel.id, "v1")
        self.assertTrue(result.transcript_written)
        again = self.importer.import_single_video(channel.id, "v1")
        self.assertEqual(again.video_id, result.video_id)
        self.assertIsNone(self.importer.import_single_video(channel.id, "missing"))

        self.transcripts.transcripts["v1"] = make_segments(7)
        refreshed = self.importer.refresh_transcript(channel.id, "v1")
        self.assertTrue(refreshed.transcript_written)
        self.assertEqual(self.store.count_transcripts(result.video_id), 7)

        self.transcripts.transcripts["v1"] = [TranscriptSegment(text="[Music]", start_time=0.0, duration=2.0)]
        poor = self.importer.refresh_transcript(channel.id, "v1")
        self.assertFalse(poor.quality)
        self.assertEqual(poor.quality_reason, "Only 1 unique words (need at least 10)")


class ImportEntryPointsTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db = FakeSupabase()
        self.store = CatalogStore(self.db)
        source = FakeVideoSource()
        source.add_channel(make_channel(), [make_video("v1"), make_video("v2")])
        transcripts = FakeTranscriptClient()
        transcripts.transcripts["v1"] = make_segments(12)
        ingestor = VideoIngestor(self.store, transcripts, FakeMirror())
        self.importer = ChannelImporter(self.store, source, ingestor)
        self.jobs = ImportJobStore(self.db)

    def test_clamp_limit(self) -> None:
        self.assertEqual(clamp_limit(None), 50)
        self.assertEqual(clamp_limit(0), 1)
        self.assertEqual(clamp_limit(10_000), 5000)
        self.assertEqual(ImportOptions(channel_handle="x", limit=99999).limit, 5000)

    def test_stream_import_yields_ndjson(self) -> None:
        lines = list(stream_import(self.importer, ImportOptions(channel_handle="testchannel")))
        self.assertTrue(all(line.endswith("\n") for line in lines))
        self.assertIn('"type": "status"', lines[0])
        self.assertIn('"type": "complete"', lines[-1])
        self.assertIn('"videosProcessed": 2', lines[-1])

    def test_stream_import_reports_single_error(self) -> None:
        lines = list(stream_import(self.importer, ImportOptions(channel_handle="nobody")))
        errors = [line for line in lines if '"type": "error"' in line]
        self.assertEqual(len(errors), 1)

    def test_run_import_job_completes_job(self) -> None:
        channel = self.store.insert_channel(make_channel(), thumbnail_url="t", banner_url=None)
        job = self.jobs.create_job(channel.id, video_limit=50)

        summary = run_import_job(self.importer, self.jobs, job.id, ImportOptions(channel_handle="testchannel"))

        row = self.jobs.get_job(job.id)
        self.assertEqual(row.status, "completed")
        self.assertEqual(row.videos_processed, 2)
        self.assertEqual(row.transcripts_downloaded, 1)
        self.assertEqual(summary.videos_processed, 2)
        actions = sorted(log["action_type"] for log in self.jobs.job_logs(job.id))
        self.assertEqual(actions, ["transcript_downloaded", "transcript_skipped", "video_imported", "video_imported"])

    def test_run_import_job_marks_failure(self) -> None:
        job = self.jobs.create_job("ch-1", video_limit=50)
        self.assertIsNone(run_import_job(self.importer, self.jobs, job.id, ImportOptions(channel_handle="nobody")))
        row = self.jobs.get_job(job.id)
        self.assertEqual(row.status, "failed")
        self.assertEqual(row.error_message, "Channel not found")


if __name__ == "__main__":
    unittest.main()
