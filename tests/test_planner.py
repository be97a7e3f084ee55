from __future__ import annotations

import unittest
from datetime import datetime, timezone

from importer.planner import ALREADY_COMPLETE, NEEDS_TRANSCRIPT, NEW_IMPORT, classify, newest_first, plan_import
from tests.fakes import make_video

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _ids(videos) -> list:
    return [video.video_id for video in videos]


class PlanImportTest(unittest.TestCase):
    def setUp(self) -> None:
        # n1..n5 are new, b1..b2 stored without transcript, c1 complete
        self.videos = [make_video(f"n{i}", days_ago=i) for i in range(1, 6)]
        self.videos += [make_video("b1", days_ago=10), make_video("b2", days_ago=11)]
        self.videos.append(make_video("c1", days_ago=12))
        self.existing = {"b1": False, "b2": False, "c1": True}

    def test_classify(self) -> None:
        self.assertEqual(classify(self.videos[0], self.existing), NEW_IMPORT)
        self.assertEqual(classify(self.videos[5], self.existing), NEEDS_TRANSCRIPT)
        self.assertEqual(classify(self.videos[7], self.existing), ALREADY_COMPLETE)

    def test_new_videos_then_backfill_within_limit(self) -> None:
        plan = plan_import(self.videos, self.existing, 7, now=NOW)
        self.assertEqual(_ids(plan.new_videos), ["n1", "n2", "n3", "n4", "n5"])
        self.assertEqual(_ids(plan.transcript_videos), ["b1", "b2"])
        self.assertEqual(plan.total_listed, 8)
        self.assertEqual(plan.already_complete, 1)
        self.assertEqual(plan.needs_transcript, 2)
        self.assertEqual(plan.new_available, 5)

    def test_limit_spent_on_new_videos_first(self) -> None:
        plan = plan_import(self.videos, self.existing, 3, now=NOW)
        self.assertEqual(_ids(plan.selected), ["n1", "n2", "n3"])
        self.assertEqual(plan.transcript_videos, [])

    def test_selection_never_exceeds_limit_or_includes_complete(self) -> None:
        for limit in range(0, 10):
            plan = plan_import(self.videos, self.existing, limit, now=NOW)
            self.assertLessEqual(len(plan.selected), limit)
            self.assertNotIn("c1", _ids(plan.selected))

    def test_skip_transcripts_leaves_backfill_empty(self) -> None:
        plan = plan_import(self.videos, self.existing, 20, skip_transcripts=True, now=NOW)
        self.assertEqual(len(plan.new_videos), 5)
        self.assertEqual(plan.transcript_videos, [])

    def test_transcripts_only(self) -> None:
        plan = plan_import(self.videos, self.existing, 1, transcripts_only=True, now=NOW)
        self.assertEqual(plan.new_videos, [])
        self.assertEqual(_ids(plan.transcript_videos), ["b1"])

    def test_live_videos_first_when_included(self) -> None:
        videos = [make_video("old-live", days_ago=30, is_live=True)] + self.videos
        plan = plan_import(videos, self.existing, 2, include_live=True, now=NOW)
        self.assertEqual(_ids(plan.new_videos), ["old-live", "n1"])

    def test_unknown_publish_dates_last(self) -> None:
        videos = [make_video("undated", days_ago=None), make_video("dated", days_ago=3)]
        self.assertEqual(_ids(newest_first(videos, now=NOW)), ["dated", "undated"])

    def test_out_of_range_publish_date_does_not_abort_planning(self) -> None:
        ancient = make_video("ancient", days_ago=None)
        ancient.published_at = "3000 years ago"
        plan = plan_import([ancient] + self.videos, self.existing, 6, now=NOW)
        self.assertEqual(_ids(plan.new_videos), ["n1", "n2", "n3", "n4", "n5", "ancient"])
        self.assertEqual(plan.new_available, 6)


if __name__ == "__main__":
    unittest.main()
