import unittest
from unittest.mock import MagicMock

from secureflow.entities.project import ScanFrequency
from secureflow.repositories.analysis_job import AnalysisJobRepository
from secureflow.services.ingestion_service import (
    IngestionGate,
    parse_push_event,
    resolve_branch,
)
from secureflow.services.pipeline_exceptions import (
    EventValidationError,
    UnauthenticatedError,
)
from tests.support import RecordingDispatcher, make_db, push_payload, seed_project


class TestParsePushEvent(unittest.TestCase):
    def test_resolve_branch(self):
        self.assertEqual(resolve_branch("refs/heads/main"), "main")
        self.assertEqual(resolve_branch("refs/heads/feature/login"), "feature/login")
        self.assertEqual(resolve_branch("refs/tags/v1.0"), "v1.0")
        self.assertEqual(resolve_branch("main"), "main")

    def test_malformed_payloads(self):
        cases = {
            "not an object": ["push"],
            "wrong kind": {**push_payload(), "object_kind": "merge_request"},
            "no project": {k: v for k, v in push_payload().items() if k != "project"},
            "no project id": {**push_payload(), "project": {"name": "x"}},
            "no commits": {k: v for k, v in push_payload().items() if k != "commits"},
            "empty commits": push_payload(commits=[]),
            "commit without id": push_payload(commits=[{"message": "x"}]),
            "no ref": {k: v for k, v in push_payload().items() if k != "ref"},
            "added is a string": push_payload(commits=[{"id": "c1", "added": "src/app.py"}]),
            "modified has a non-path": push_payload(
                commits=[{"id": "c1", "modified": ["ok.py", {"path": "x.py"}]}]
            ),
        }
        for name, payload in cases.items():
            with self.subTest(name):
                with self.assertRaises(EventValidationError):
                    parse_push_event(payload)

    def test_head_commit_is_last_and_files_are_collected(self):
        event = parse_push_event(
            push_payload(
                commits=[
                    {"id": "first", "added": ["a.py"], "modified": []},
                    {"id": "head", "added": ["b.py"], "modified": ["a.py"]},
                ]
            )
        )
        self.assertEqual(event.head_commit["id"], "head")
        self.assertEqual(event.changed_files, ["a.py", "b.py"])
        self.assertEqual(event.project_id, "42")


class TestIngestionGate(unittest.TestCase):
    def setUp(self):
        self.db = make_db()
        self.dispatcher = RecordingDispatcher()
        self.gate = IngestionGate(self.db, self.dispatcher, default_branches=["main", "master"])
        self.jobs = AnalysisJobRepository(self.db)

    def test_push_to_main_creates_and_dispatches_job(self):
        seed_project(self.db)

        outcome = self.gate.handle_push(push_payload())

        self.assertEqual(outcome.status_code, 202)
        self.assertTrue(outcome.created)
        body = outcome.to_response()
        self.assertEqual(body["status"], "PENDING")
        self.assertEqual(body["projectId"], "42")
        self.assertEqual(body["commitHash"], "a1b2c3d4e5f6")
        self.assertEqual(self.dispatcher.dispatched, [body["analysisId"]])

        job = self.jobs.get(body["analysisId"])
        self.assertEqual(job.triggered_by, "webhook")
        self.assertEqual(job.requested_by, "owner-1")
        self.assertEqual(job.ref, "refs/heads/main")
        self.assertEqual(job.author["email"], "dev@example.com")

    def test_duplicate_delivery_returns_existing_job_without_dispatch(self):
        seed_project(self.db)

        first = self.gate.handle_push(push_payload())
        second = self.gate.handle_push(push_payload())

        self.assertEqual(second.status_code, 202)
        self.assertFalse(second.created)
        self.assertEqual(first.job.id, second.job.id)
        self.assertEqual(len(self.dispatcher.dispatched), 1)
        self.assertEqual(self.db.analysis_jobs.count_documents({}), 1)

    def test_push_to_feature_branch_is_ignored(self):
        seed_project(self.db)

        outcome = self.gate.handle_push(push_payload(ref="refs/heads/feature-x"))

        self.assertEqual(outcome.status_code, 200)
        self.assertEqual(outcome.message, "Not main branch, ignoring")
        self.assertEqual(self.db.analysis_jobs.count_documents({}), 0)
        self.assertEqual(self.dispatcher.dispatched, [])

    def test_project_tracked_branches_override_defaults(self):
        seed_project(self.db, tracked_branches=["develop"])

        ignored = self.gate.handle_push(push_payload(ref="refs/heads/main"))
        accepted = self.gate.handle_push(push_payload(ref="refs/heads/develop"))

        self.assertEqual(ignored.status_code, 200)
        self.assertEqual(accepted.status_code, 202)

    def test_unregistered_project_is_ignored(self):
        outcome = self.gate.handle_push(push_payload(project_id=999))

        self.assertEqual(outcome.status_code, 200)
        self.assertEqual(outcome.message, "Project not configured for SecureFlow")
        self.assertEqual(self.db.analysis_jobs.count_documents({}), 0)

    def test_unregistered_project_is_reported_before_branch(self):
        outcome = self.gate.handle_push(
            push_payload(project_id=999, ref="refs/heads/feature-x")
        )

        self.assertEqual(outcome.status_code, 200)
        self.assertEqual(outcome.message, "Project not configured for SecureFlow")

    def test_project_not_scanned_on_push_is_ignored(self):
        seed_project(self.db, scan_frequency=ScanFrequency.DAILY)

        outcome = self.gate.handle_push(push_payload())

        self.assertEqual(outcome.status_code, 200)
        self.assertEqual(outcome.message, "Project not configured for push scanning")

    def test_webhook_token_is_verified(self):
        seed_project(self.db, webhook_secret="s3cret")

        for token in (None, "wrong"):
            with self.subTest(token=token):
                with self.assertRaises(UnauthenticatedError):
                    self.gate.handle_push(push_payload(), token=token)
        self.assertEqual(self.db.analysis_jobs.count_documents({}), 0)

        outcome = self.gate.handle_push(push_payload(), token="s3cret")
        self.assertEqual(outcome.status_code, 202)

    def test_token_check_can_be_disabled(self):
        seed_project(self.db, webhook_secret="s3cret")
        gate = IngestionGate(self.db, self.dispatcher, verify_token=False)

        self.assertEqual(gate.handle_push(push_payload(), token=None).status_code, 202)

    def test_dispatch_failure_fails_job_and_frees_key(self):
        seed_project(self.db)
        broken = MagicMock()
        broken.dispatch.side_effect = ConnectionError("broker unreachable")
        gate = IngestionGate(self.db, broken)

        with self.assertRaises(ConnectionError):
            gate.handle_push(push_payload())

        stored = self.db.analysis_jobs.find_one({})
        self.assertEqual(stored["status"], "FAILED")
        self.assertIn("broker unreachable", stored["error"])

        # Redelivery gets a fresh job
        outcome = self.gate.handle_push(push_payload())
        self.assertTrue(outcome.created)


if __name__ == "__main__":
    unittest.main()
