import unittest
from datetime import timedelta

from secureflow.entities.analysis_job import JobStatus, TriggerSource
from secureflow.repositories.analysis_job import AnalysisJobRepository
from secureflow.services.pipeline_exceptions import (
    JobNotFoundError,
    TransitionConflictError,
)
from secureflow.utils.datetime import utc_now
from tests.support import make_db


class TestAnalysisJobRepository(unittest.TestCase):
    def setUp(self):
        self.db = make_db()
        self.repo = AnalysisJobRepository(self.db)

    def _create(self, commit="abc123", source=TriggerSource.WEBHOOK, project="42"):
        return self.repo.create_if_absent(project, commit, source)

    def _start(self, job_id, stage="FETCHING_CODE"):
        return self.repo.transition(
            job_id,
            JobStatus.PENDING,
            {"status": JobStatus.IN_PROGRESS, "stage": stage, "progress": 0},
        )

    def test_create_if_absent_creates_pending_job(self):
        job, created = self._create()

        self.assertTrue(created)
        self.assertIsNotNone(job.id)
        self.assertEqual(job.status, "PENDING")
        self.assertEqual(job.progress, 0)
        self.assertEqual(job.triggered_by, "webhook")
        self.assertEqual(self.db.analysis_jobs.count_documents({}), 1)

    def test_duplicate_creation_returns_existing_job(self):
        first, created_first = self._create()
        second, created_second = self._create()

        self.assertTrue(created_first)
        self.assertFalse(created_second)
        self.assertEqual(first.id, second.id)
        self.assertEqual(self.db.analysis_jobs.count_documents({}), 1)

    def test_duplicate_of_running_job_is_not_created(self):
        job, _ = self._create()
        self._start(job.id)

        again, created = self._create()

        self.assertFalse(created)
        self.assertEqual(again.id, job.id)
        self.assertEqual(again.status, "IN_PROGRESS")

    def test_different_trigger_sources_are_independent(self):
        webhook_job, _ = self._create(source=TriggerSource.WEBHOOK)
        manual_job, created = self._create(source=TriggerSource.MANUAL)

        self.assertTrue(created)
        self.assertNotEqual(webhook_job.id, manual_job.id)

    def test_new_job_allowed_after_previous_is_terminal(self):
        job, _ = self._create()
        self.repo.cancel(job.id)

        fresh, created = self._create()

        self.assertTrue(created)
        self.assertNotEqual(fresh.id, job.id)
        stored = self.db.analysis_jobs.find_one({"_id": job.id})
        self.assertNotIn("active_key", stored)

    def test_get_unknown_and_malformed_ids(self):
        with self.assertRaises(JobNotFoundError):
            self.repo.get("65f000000000000000000000")
        with self.assertRaises(JobNotFoundError):
            self.repo.get("not-an-object-id")

    def test_transition_increments_version(self):
        job, _ = self._create()
        started = self._start(job.id)

        self.assertEqual(started.status, "IN_PROGRESS")
        self.assertEqual(started.stage, "FETCHING_CODE")
        self.assertEqual(started.version, job.version + 1)

    def test_transition_with_stale_status_conflicts(self):
        job, _ = self._create()
        self._start(job.id)

        with self.assertRaises(TransitionConflictError) as ctx:
            self._start(job.id)
        self.assertEqual(ctx.exception.actual, "IN_PROGRESS")

    def test_transition_with_stale_stage_conflicts(self):
        job, _ = self._create()
        self._start(job.id)
        self.repo.transition(
            job.id,
            JobStatus.IN_PROGRESS,
            {"stage": "STATIC_ANALYSIS", "progress": 20},
            expected_stage="FETCHING_CODE",
        )

        with self.assertRaises(TransitionConflictError):
            self.repo.transition(
                job.id,
                JobStatus.IN_PROGRESS,
                {"stage": "STATIC_ANALYSIS", "progress": 20},
                expected_stage="FETCHING_CODE",
            )

    def test_progress_never_moves_backwards(self):
        job, _ = self._create()
        self._start(job.id)
        self.repo.transition(job.id, JobStatus.IN_PROGRESS, {"progress": 40})

        with self.assertRaises(TransitionConflictError):
            self.repo.transition(job.id, JobStatus.IN_PROGRESS, {"progress": 20})
        self.assertEqual(self.repo.get(job.id).progress, 40)

    def test_terminal_job_rejects_every_transition(self):
        job, _ = self._create()
        self._start(job.id)
        self.repo.transition(
            job.id,
            JobStatus.IN_PROGRESS,
            {"status": JobStatus.COMPLETED, "progress": 100, "result": {"ok": True}},
        )

        for expected in JobStatus:
            with self.assertRaises(TransitionConflictError):
                self.repo.transition(job.id, expected, {"progress": 100})
        with self.assertRaises(TransitionConflictError):
            self.repo.cancel(job.id)

        final = self.repo.get(job.id)
        self.assertEqual(final.status, "COMPLETED")
        self.assertEqual(final.progress, 100)

    def test_cancel_from_pending_and_in_progress(self):
        pending, _ = self._create(commit="c1")
        running, _ = self._create(commit="c2")
        self._start(running.id)

        for job_id in (pending.id, running.id):
            cancelled = self.repo.cancel(job_id)
            self.assertEqual(cancelled.status, "CANCELLED")
            self.assertIsNotNone(cancelled.cancelled_at)

    def test_list_by_project_most_recent_first(self):
        ids = [self._create(commit=f"c{i}")[0].id for i in range(3)]
        self._create(commit="other", project="7")

        listed = self.repo.list_by_project("42", limit=2)

        self.assertEqual([j.id for j in listed], [ids[2], ids[1]])

    def test_find_active_and_latest_completed(self):
        job, _ = self._create()
        self.assertEqual(self.repo.find_active_for_project("42").id, job.id)

        self._start(job.id)
        self.repo.transition(
            job.id,
            JobStatus.IN_PROGRESS,
            {"status": JobStatus.COMPLETED, "progress": 100, "completed_at": utc_now()},
        )

        self.assertIsNone(self.repo.find_active_for_project("42"))
        since = utc_now() - timedelta(hours=1)
        self.assertEqual(self.repo.find_latest_completed("42", since=since).id, job.id)
        self.assertIsNone(
            self.repo.find_latest_completed("42", since=utc_now() + timedelta(hours=1))
        )


if __name__ == "__main__":
    unittest.main()
