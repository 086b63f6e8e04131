"""Shared fixtures for the test suite: in-memory MongoDB and seed helpers."""

from typing import Any, Dict, List, Optional

import mongomock

from secureflow.entities.project import Project, ScanFrequency
from secureflow.repositories.project import ProjectRepository
from secureflow.services.auth import create_access_token


def make_db(name: str = "secureflow_test"):
    return mongomock.MongoClient()[name]


def seed_project(
    db,
    external_id: str = "42",
    scan_frequency: ScanFrequency = ScanFrequency.ON_PUSH,
    tracked_branches: Optional[List[str]] = None,
    webhook_secret: Optional[str] = None,
    owner_id: str = "owner-1",
) -> Project:
    project = Project(
        external_id=external_id,
        name=f"project-{external_id}",
        scan_frequency=scan_frequency,
        tracked_branches=tracked_branches or [],
        webhook_secret=webhook_secret,
        owner_id=owner_id,
    )
    return ProjectRepository(db).insert_one(project)


def push_payload(
    project_id: Any = 42,
    ref: str = "refs/heads/main",
    commits: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    if commits is None:
        commits = [
            {
                "id": "a1b2c3d4e5f6",
                "message": "Add login form",
                "author": {"name": "Dev", "email": "dev@example.com"},
                "added": ["src/auth/login.py"],
                "modified": ["src/api/routes.py"],
            }
        ]
    return {
        "object_kind": "push",
        "ref": ref,
        "project": {"id": project_id, "name": "demo"},
        "commits": commits,
    }


def auth_header(user_id: str = "user-1", role: str = "VIEWER") -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}


class RecordingDispatcher:
    """Dispatcher that only remembers what it was asked to run."""

    def __init__(self):
        self.dispatched: List[str] = []

    def dispatch(self, job_id: str) -> None:
        self.dispatched.append(job_id)
