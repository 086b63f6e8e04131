import unittest
from unittest.mock import MagicMock, patch

from secureflow.entities.analysis_job import JobStatus, TriggerSource
from secureflow.entities.project import ScanFrequency
from secureflow.repositories.analysis_job import AnalysisJobRepository
from secureflow.tasks.analysis import run_analysis_job
from secureflow.tasks.scheduling import run_scheduled_analyses
from tests.support import make_db, seed_project


class TestAnalysisTasks(unittest.TestCase):
    def setUp(self):
        self.db = make_db()
        self.jobs = AnalysisJobRepository(self.db)

    @patch("secureflow.tasks.analysis.get_worker_events")
    @patch("secureflow.tasks.analysis.get_worker_db")
    def test_run_analysis_job_completes(self, mock_get_db, mock_events):
        mock_get_db.return_value = self.db
        job, _ = self.jobs.create_if_absent("42", "abc", TriggerSource.WEBHOOK)

        result = run_analysis_job(str(job.id))

        self.assertEqual(result["status"], "COMPLETED")
        self.assertEqual(result["progress"], 100)
        self.assertEqual(self.jobs.get(job.id).status, "COMPLETED")
        published = mock_events.return_value.publish_job_update.call_args_list
        self.assertEqual(published[-1].kwargs["status"], "COMPLETED")

    @patch("secureflow.tasks.analysis.get_worker_events")
    @patch("secureflow.tasks.analysis.get_worker_db")
    def test_run_analysis_job_skips_finished_job(self, mock_get_db, mock_events):
        mock_get_db.return_value = self.db
        job, _ = self.jobs.create_if_absent("42", "abc", TriggerSource.WEBHOOK)
        run_analysis_job(str(job.id))

        result = run_analysis_job(str(job.id))

        self.assertEqual(result["status"], "skipped")

    @patch("secureflow.tasks.analysis.get_worker_events")
    @patch("secureflow.tasks.analysis.get_worker_db")
    def test_unknown_job_is_skipped(self, mock_get_db, mock_events):
        mock_get_db.return_value = self.db

        result = run_analysis_job("65f000000000000000000000")

        self.assertEqual(result["status"], "skipped")

    @patch("secureflow.tasks.analysis.get_worker_events")
    @patch("secureflow.tasks.analysis.get_worker_db")
    def test_redelivered_task_fails_job_left_by_dead_worker(self, mock_get_db, mock_events):
        mock_get_db.return_value = self.db
        job, _ = self.jobs.create_if_absent("42", "abc", TriggerSource.WEBHOOK)
        self.jobs.transition(
            job.id,
            JobStatus.PENDING,
            {"status": JobStatus.IN_PROGRESS, "stage": "STATIC_ANALYSIS", "progress": 20},
        )

        # A fresh delivery still treats the job as running elsewhere
        self.assertEqual(run_analysis_job(str(job.id))["status"], "skipped")

        run_analysis_job.push_request(id="task-2", delivery_info={"redelivered": True})
        try:
            result = run_analysis_job.run(str(job.id))
        finally:
            run_analysis_job.pop_request()

        self.assertEqual(result["status"], "FAILED")
        stored = self.jobs.get(job.id)
        self.assertEqual(stored.error, "Worker lost while running STATIC_ANALYSIS")
        self.assertIsNone(stored.active_key)

        # The commit can be analyzed again
        _, created = self.jobs.create_if_absent("42", "abc", TriggerSource.WEBHOOK)
        self.assertTrue(created)


class TestSchedulingTasks(unittest.TestCase):
    @patch("secureflow.tasks.scheduling.get_worker_events")
    @patch("secureflow.tasks.scheduling.CeleryDispatcher")
    @patch("secureflow.tasks.scheduling.get_worker_db")
    def test_run_scheduled_analyses_dispatches_jobs(
        self, mock_get_db, MockDispatcher, mock_events
    ):
        db = make_db()
        mock_get_db.return_value = db
        dispatcher = MagicMock()
        MockDispatcher.return_value = dispatcher
        seed_project(db, external_id="w1", scan_frequency=ScanFrequency.WEEKLY)

        summary = run_scheduled_analyses("WEEKLY")

        self.assertEqual(len(summary["scheduled"]), 1)
        dispatcher.dispatch.assert_called_once_with(summary["scheduled"][0])


if __name__ == "__main__":
    unittest.main()
