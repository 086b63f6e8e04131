import unittest
from datetime import timedelta

from secureflow.entities.analysis_job import JobStatus, TriggerSource
from secureflow.entities.project import ScanFrequency
from secureflow.repositories.analysis_job import AnalysisJobRepository
from secureflow.services.pipeline_exceptions import EventValidationError
from secureflow.services.scheduler_service import ScanScheduler
from secureflow.utils.datetime import utc_now
from tests.support import RecordingDispatcher, make_db, seed_project


class TestScanScheduler(unittest.TestCase):
    def setUp(self):
        self.db = make_db()
        self.dispatcher = RecordingDispatcher()
        self.scheduler = ScanScheduler(self.db, self.dispatcher)
        self.jobs = AnalysisJobRepository(self.db)

    def _complete(self, project_id, completed_at):
        job, _ = self.jobs.create_if_absent(project_id, "old", TriggerSource.MANUAL)
        self.jobs.transition(job.id, JobStatus.PENDING, {"status": JobStatus.IN_PROGRESS})
        self.jobs.transition(
            job.id,
            JobStatus.IN_PROGRESS,
            {"status": JobStatus.COMPLETED, "progress": 100, "completed_at": completed_at},
        )

    def test_schedules_only_matching_frequency(self):
        seed_project(self.db, external_id="d1", scan_frequency=ScanFrequency.DAILY, owner_id="alice")
        seed_project(self.db, external_id="w1", scan_frequency=ScanFrequency.WEEKLY)
        seed_project(self.db, external_id="p1", scan_frequency=ScanFrequency.ON_PUSH)

        summary = self.scheduler.run("DAILY")

        self.assertEqual(len(summary["scheduled"]), 1)
        job = self.jobs.get(summary["scheduled"][0])
        self.assertEqual(job.project_id, "d1")
        self.assertEqual(job.commit_hash, "latest")
        self.assertEqual(job.triggered_by, "scheduled")
        self.assertEqual(job.requested_by, "alice")
        self.assertEqual(self.dispatcher.dispatched, summary["scheduled"])

    def test_skips_project_with_active_job(self):
        seed_project(self.db, external_id="d1", scan_frequency=ScanFrequency.DAILY)
        self.jobs.create_if_absent("d1", "abc", TriggerSource.WEBHOOK)

        summary = self.scheduler.run("DAILY")

        self.assertEqual(summary["scheduled"], [])
        self.assertEqual(summary["skipped"], [{"projectId": "d1", "reason": "analysis in progress"}])

    def test_recent_completion_cutoffs(self):
        seed_project(self.db, external_id="d1", scan_frequency=ScanFrequency.DAILY)
        seed_project(self.db, external_id="d2", scan_frequency=ScanFrequency.DAILY)
        seed_project(self.db, external_id="w1", scan_frequency=ScanFrequency.WEEKLY)
        self._complete("d1", utc_now() - timedelta(hours=10))
        self._complete("d2", utc_now() - timedelta(hours=30))
        self._complete("w1", utc_now() - timedelta(days=3))

        daily = self.scheduler.run("DAILY")
        weekly = self.scheduler.run("WEEKLY")

        scheduled_projects = [self.jobs.get(j).project_id for j in daily["scheduled"]]
        self.assertEqual(scheduled_projects, ["d2"])
        self.assertEqual(weekly["scheduled"], [])
        self.assertEqual(weekly["skipped"][0]["reason"], "recently scanned")

    def test_on_push_and_unknown_frequencies_are_rejected(self):
        for frequency in ("ON_PUSH", "HOURLY"):
            with self.subTest(frequency=frequency):
                with self.assertRaises(EventValidationError):
                    self.scheduler.run(frequency)


if __name__ == "__main__":
    unittest.main()
