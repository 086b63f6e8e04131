import asyncio
import threading
import unittest
from unittest.mock import MagicMock

from secureflow.entities.analysis_job import TriggerSource
from secureflow.pipeline.dispatch import BackgroundLoopDispatcher, dispatch_or_fail
from secureflow.repositories.analysis_job import AnalysisJobRepository
from tests.support import RecordingDispatcher, make_db


class TestDispatchOrFail(unittest.TestCase):
    def setUp(self):
        self.jobs = AnalysisJobRepository(make_db())
        self.job, _ = self.jobs.create_if_absent("42", "abc", TriggerSource.MANUAL)
        self.events = MagicMock()

    def test_successful_dispatch_publishes_nothing(self):
        dispatcher = RecordingDispatcher()

        dispatch_or_fail(dispatcher, self.jobs, str(self.job.id), self.events)

        self.assertEqual(dispatcher.dispatched, [str(self.job.id)])
        self.events.publish_job_update.assert_not_called()

    def test_failed_dispatch_publishes_failed_state(self):
        broken = MagicMock()
        broken.dispatch.side_effect = ConnectionError("broker unreachable")

        with self.assertRaises(ConnectionError):
            dispatch_or_fail(broken, self.jobs, str(self.job.id), self.events)

        self.assertEqual(self.jobs.get(self.job.id).status, "FAILED")
        self.events.publish_job_update.assert_called_once()
        kwargs = self.events.publish_job_update.call_args.kwargs
        self.assertEqual(kwargs["status"], "FAILED")
        self.assertIn("broker unreachable", kwargs["error"])

    def test_publish_error_does_not_mask_dispatch_error(self):
        broken = MagicMock()
        broken.dispatch.side_effect = ConnectionError("broker unreachable")
        self.events.publish_job_update.side_effect = RuntimeError("redis down")

        with self.assertRaises(ConnectionError):
            dispatch_or_fail(broken, self.jobs, str(self.job.id), self.events)


class TestBackgroundLoopDispatcher(unittest.TestCase):
    def test_stop_cancels_running_jobs_before_closing_loop(self):
        started = threading.Event()
        cancelled = threading.Event()

        class HangingOrchestrator:
            async def run(self, job_id):
                started.set()
                try:
                    await asyncio.sleep(60)
                except asyncio.CancelledError:
                    cancelled.set()
                    raise

        dispatcher = BackgroundLoopDispatcher(HangingOrchestrator())
        dispatcher.dispatch("job-1")
        self.assertTrue(started.wait(timeout=2))

        dispatcher.stop(timeout=2)

        self.assertTrue(cancelled.is_set())
        self.assertIsNone(dispatcher._loop)

    def test_wait_returns_after_job_finishes(self):
        finished = []

        class QuickOrchestrator:
            async def run(self, job_id):
                finished.append(job_id)

        dispatcher = BackgroundLoopDispatcher(QuickOrchestrator())
        try:
            dispatcher.dispatch("job-2")
            dispatcher.wait("job-2", timeout=2)
        finally:
            dispatcher.stop()

        self.assertEqual(finished, ["job-2"])


if __name__ == "__main__":
    unittest.main()
