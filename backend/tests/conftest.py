"""Shared fixtures: in-memory repository and undo store fakes."""

import pytest

from services.errors import StoreUnavailableError
from services.fix_service import FixService
from services.gitlab_client import ParentMismatchError, RemoteFile, RepositoryError
from services.undo_store import MemoryUndoStore, UndoRecordStore

PROJECT = "42"
MR_IID = "7"
BRANCH = "feature/login"


class FakeRepository:
    """Single-branch repository keeping every committed file version."""

    def __init__(self, files=None, head="c0", branch=BRANCH):
        self.files = dict(files or {})
        self.head = head
        self.branch = branch
        self.source_branch = branch
        self.commits = []
        self.before_commit = None
        self.fail_with = None

    async def get_merge_request_source_branch(self, project, mr_iid):
        return self.source_branch

    async def get_branch_head(self, project, branch):
        if self.fail_with is not None:
            raise self.fail_with
        return self.head

    async def get_file(self, project, path, ref):
        if path not in self.files:
            raise RepositoryError("404 File Not Found", 404)
        return RemoteFile(path=path, ref=ref, content=self.files[path], last_commit_id=self.head)

    async def get_file_content(self, project, path, ref):
        return self.files[path]

    async def commit_file_update(
        self, project, branch, path, content, expected_parent, message, last_commit_id=None
    ):
        if self.before_commit is not None:
            self.before_commit(self)
        if expected_parent != self.head:
            raise ParentMismatchError("branch moved", 409)
        self.files[path] = content
        self.head = f"c{len(self.commits) + 1}"
        self.commits.append({"path": path, "message": message, "parent": expected_parent})
        return self.head

    def push(self, path, content):
        """Simulate a concurrent writer pushing a commit."""
        self.files[path] = content
        self.head = f"{self.head}-external"


class BrokenUndoStore(MemoryUndoStore):
    """Undo store whose backend is down."""

    async def set(self, key, value, ttl_seconds):
        raise StoreUnavailableError("connection refused")

    async def get(self, key):
        raise StoreUnavailableError("connection refused")


@pytest.fixture
def repository():
    return FakeRepository(files={"app/login.py": "a\nb\nc\nd\n"})


@pytest.fixture
def undo_store():
    return MemoryUndoStore()


@pytest.fixture
def fix_service(repository, undo_store):
    return FixService(repository, UndoRecordStore(undo_store), context_lines=2)


@pytest.fixture
def make_repository():
    return FakeRepository


@pytest.fixture
def broken_undo_store():
    return BrokenUndoStore()
