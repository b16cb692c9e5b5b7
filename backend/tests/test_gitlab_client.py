"""Tests for the GitLab client request shaping (no network)."""

import asyncio
import base64
import json

import aiohttp
import pytest

from services import gitlab_client
from services.gitlab_client import GitLabClient, ParentMismatchError, RepositoryError


@pytest.fixture
def client():
    return GitLabClient("https://gitlab.example.com/", token="glpat-x")


def _fake_api(responses, calls):
    async def fake_request_json(method, path, **kwargs):
        calls.append((method, path, kwargs))
        return responses[(method, path)]

    return fake_request_json


def test_from_config():
    client = GitLabClient.from_config(
        {"gitlab": {"baseUrl": "https://git.corp", "token": "t", "timeoutSeconds": 5}}
    )
    assert client.api_url == "https://git.corp/api/v4"
    assert client.timeout_seconds == 5
    assert client._headers()["Authorization"] == "Bearer t"


def test_get_file_decodes_base64_and_encodes_path(client, monkeypatch):
    calls = []
    encoded = base64.b64encode("a\r\nb\r\n".encode("utf-8")).decode("ascii")
    monkeypatch.setattr(
        client,
        "_request_json",
        _fake_api(
            {
                ("GET", "/projects/group%2Fapp/repository/files/src%2Fmain.py"): {
                    "content": encoded,
                    "encoding": "base64",
                    "last_commit_id": "f00",
                }
            },
            calls,
        ),
    )

    remote_file = asyncio.run(client.get_file("group/app", "src/main.py", "abc123"))

    assert remote_file.content == "a\r\nb\r\n"
    assert remote_file.last_commit_id == "f00"
    assert calls[0][2]["params"] == {"ref": "abc123"}


def test_branch_head(client, monkeypatch):
    calls = []
    monkeypatch.setattr(
        client,
        "_request_json",
        _fake_api({("GET", "/projects/42/repository/branches/feature%2Fx"): {"commit": {"id": "abc"}}}, calls),
    )
    assert asyncio.run(client.get_branch_head(42, "feature/x")) == "abc"


def test_source_branch_missing(client, monkeypatch):
    monkeypatch.setattr(
        client, "_request_json", _fake_api({("GET", "/projects/42/merge_requests/7"): {}}, [])
    )
    with pytest.raises(RepositoryError):
        asyncio.run(client.get_merge_request_source_branch(42, 7))


def test_commit_rejects_moved_branch(client, monkeypatch):
    calls = []
    monkeypatch.setattr(
        client,
        "_request_json",
        _fake_api({("GET", "/projects/42/repository/branches/main"): {"commit": {"id": "new"}}}, calls),
    )
    with pytest.raises(ParentMismatchError):
        asyncio.run(client.commit_file_update(42, "main", "f.py", "x\n", "old", "msg"))
    assert all(method == "GET" for method, _, _ in calls)


def test_commit_payload(client, monkeypatch):
    calls = []
    monkeypatch.setattr(
        client,
        "_request_json",
        _fake_api(
            {
                ("GET", "/projects/42/repository/branches/main"): {"commit": {"id": "head"}},
                ("POST", "/projects/42/repository/commits"): {"id": "c1"},
            },
            calls,
        ),
    )

    commit_id = asyncio.run(
        client.commit_file_update(42, "main", "f.py", "x\n", "head", "fix: f.py:1-1", last_commit_id="f00")
    )

    assert commit_id == "c1"
    payload = calls[-1][2]["payload"]
    assert payload["branch"] == "main"
    assert payload["commit_message"] == "fix: f.py:1-1"
    assert payload["actions"] == [
        {
            "action": "update",
            "file_path": "f.py",
            "content": "x\n",
            "encoding": "text",
            "last_commit_id": "f00",
        }
    ]


def test_undecodable_file_is_repository_error(client, monkeypatch):
    encoded = base64.b64encode(b"\xff\xfe\x00binary").decode("ascii")
    monkeypatch.setattr(
        client,
        "_request_json",
        _fake_api(
            {("GET", "/projects/42/repository/files/logo.png"): {"content": encoded, "encoding": "base64"}},
            [],
        ),
    )
    with pytest.raises(RepositoryError) as excinfo:
        asyncio.run(client.get_file(42, "logo.png", "abc"))
    assert excinfo.value.status_code == 422


# ---------------------------------------------------------------------------
# Transport: status and error mapping in _request
# ---------------------------------------------------------------------------


class FakeResponse:
    def __init__(self, status, body):
        self.status = status
        self.body = body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def text(self):
        return self.body if isinstance(self.body, str) else json.dumps(self.body)

    async def json(self):
        return self.body


class FakeSession:
    """Stands in for aiohttp.ClientSession, answering with a canned outcome."""

    outcome = None
    requests = []

    def __init__(self, *args, **kwargs):
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def request(self, method, url, **kwargs):
        FakeSession.requests.append((method, url, kwargs))
        if isinstance(FakeSession.outcome, BaseException):
            raise FakeSession.outcome
        return FakeSession.outcome


@pytest.fixture
def session(monkeypatch):
    FakeSession.outcome = None
    FakeSession.requests = []
    monkeypatch.setattr(gitlab_client.aiohttp, "ClientSession", FakeSession)
    return FakeSession


class TestRequestErrors:
    def test_stale_last_commit_id_is_parent_mismatch(self, client, session):
        session.outcome = FakeResponse(
            400,
            {
                "message": "You are attempting to update a file that has changed "
                "since you started editing it."
            },
        )
        with pytest.raises(ParentMismatchError) as excinfo:
            asyncio.run(client._request_json("POST", "/projects/42/repository/commits", payload={}))
        assert excinfo.value.status_code == 400

    def test_conflict_without_marker_is_plain_error(self, client, session):
        session.outcome = FakeResponse(400, {"message": "branch is missing"})
        with pytest.raises(RepositoryError) as excinfo:
            asyncio.run(client._request_json("POST", "/projects/42/repository/commits", payload={}))
        assert not isinstance(excinfo.value, ParentMismatchError)
        assert excinfo.value.status_code == 400

    def test_server_error_keeps_status(self, client, session):
        session.outcome = FakeResponse(500, "Internal Server Error")
        with pytest.raises(RepositoryError) as excinfo:
            asyncio.run(client.get_branch_head(42, "main"))
        assert not isinstance(excinfo.value, ParentMismatchError)
        assert excinfo.value.status_code == 500

    def test_network_error_has_no_status(self, client, session):
        session.outcome = aiohttp.ClientConnectionError("connection refused")
        with pytest.raises(RepositoryError) as excinfo:
            asyncio.run(client.get_branch_head(42, "main"))
        assert excinfo.value.status_code is None

    def test_timeout_is_gateway_timeout(self, client, session):
        session.outcome = asyncio.TimeoutError()
        with pytest.raises(RepositoryError) as excinfo:
            asyncio.run(client.get_branch_head(42, "main"))
        assert excinfo.value.status_code == 504

    def test_success_sends_token_and_params(self, client, session):
        session.outcome = FakeResponse(200, {"commit": {"id": "abc"}})
        assert asyncio.run(client.get_branch_head(42, "feature/x")) == "abc"
        method, url, kwargs = session.requests[0]
        assert method == "GET"
        assert url == "https://gitlab.example.com/api/v4/projects/42/repository/branches/feature%2Fx"
        assert kwargs["headers"]["Authorization"] == "Bearer glpat-x"
