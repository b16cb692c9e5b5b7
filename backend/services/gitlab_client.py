"""
GitLab Client - Repository operations needed to apply and revert fixes
Talks to the GitLab REST API v4 with one aiohttp session per request
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import aiohttp

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Remote repository request failed"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ParentMismatchError(RepositoryError):
    """Branch or file moved past the expected parent before the commit landed"""


@dataclass
class RemoteFile:
    """File content read at a given ref"""

    path: str
    ref: str
    content: str
    last_commit_id: str | None = None


# GitLab answers a stale last_commit_id with 400 and this wording
_FILE_CHANGED_MARKERS = ("has changed since", "changed since you started editing")


def _encode(value: str | int) -> str:
    return quote(str(value), safe="")


class GitLabClient:
    """Minimal GitLab API client for branch heads, files and commits"""

    def __init__(self, base_url: str, token: str = "", timeout_seconds: int = 30):
        self.base_url = base_url.rstrip("/")
        self.api_url = f"{self.base_url}/api/v4"
        self.token = token
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "GitLabClient":
        cfg = config.get("gitlab", {})
        return cls(
            base_url=cfg.get("baseUrl", "https://gitlab.com"),
            token=cfg.get("token", ""),
            timeout_seconds=cfg.get("timeoutSeconds", 30),
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @asynccontextmanager
    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ):
        """Context manager for API requests with automatic session cleanup"""
        url = f"{self.api_url}{path}"
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        logger.debug("[GitLab] %s %s", method, path)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(
                    method, url, params=params, json=payload, headers=self._headers()
                ) as response:
                    if response.status >= 400:
                        error_text = await response.text()
                        logger.error("[GitLab] %s %s failed (%d): %s", method, path, response.status, error_text)
                        if response.status in (400, 409) and any(
                            marker in error_text for marker in _FILE_CHANGED_MARKERS
                        ):
                            raise ParentMismatchError(
                                f"GitLab rejected the commit: {error_text}", response.status
                            )
                        raise RepositoryError(
                            f"GitLab API error ({response.status}): {error_text}", response.status
                        )
                    yield response
        except asyncio.TimeoutError as e:
            logger.error("[GitLab] %s %s timed out after %ss", method, path, self.timeout_seconds)
            raise RepositoryError(
                f"GitLab request timed out after {self.timeout_seconds}s", 504
            ) from e
        except aiohttp.ClientError as e:
            logger.error("[GitLab] %s %s network error: %s", method, path, e)
            raise RepositoryError(f"GitLab request failed: {e}") from e

    async def _request_json(self, method: str, path: str, **kwargs) -> Any:
        async with self._request(method, path, **kwargs) as response:
            return await response.json()

    async def get_merge_request(self, project: str | int, mr_iid: str | int) -> dict[str, Any]:
        return await self._request_json(
            "GET", f"/projects/{_encode(project)}/merge_requests/{_encode(mr_iid)}"
        )

    async def get_merge_request_source_branch(self, project: str | int, mr_iid: str | int) -> str:
        merge_request = await self.get_merge_request(project, mr_iid)
        branch = merge_request.get("source_branch")
        if not branch:
            raise RepositoryError(f"Merge request {mr_iid} has no source branch")
        return branch

    async def get_branch_head(self, project: str | int, branch: str) -> str:
        data = await self._request_json(
            "GET", f"/projects/{_encode(project)}/repository/branches/{_encode(branch)}"
        )
        commit_id = (data.get("commit") or {}).get("id")
        if not commit_id:
            raise RepositoryError(f"Branch {branch} has no head commit")
        return commit_id

    async def get_file(self, project: str | int, path: str, ref: str) -> RemoteFile:
        data = await self._request_json(
            "GET",
            f"/projects/{_encode(project)}/repository/files/{_encode(path)}",
            params={"ref": ref},
        )
        raw = data.get("content", "")
        if data.get("encoding") == "base64":
            try:
                content = base64.b64decode(raw).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as e:
                raise RepositoryError(f"{path} is not a UTF-8 text file", 422) from e
        else:
            content = raw
        return RemoteFile(
            path=path,
            ref=ref,
            content=content,
            last_commit_id=data.get("last_commit_id"),
        )

    async def get_file_content(self, project: str | int, path: str, ref: str) -> str:
        remote_file = await self.get_file(project, path, ref)
        return remote_file.content

    async def commit_file_update(
        self,
        project: str | int,
        branch: str,
        path: str,
        content: str,
        expected_parent: str,
        message: str,
        last_commit_id: str | None = None,
    ) -> str:
        """Commit new file content and return the new commit id.

        Raises ParentMismatchError when the branch head is no longer
        expected_parent, or when GitLab reports the file changed after
        last_commit_id.
        """
        head = await self.get_branch_head(project, branch)
        if head != expected_parent:
            raise ParentMismatchError(
                f"Branch {branch} moved from {expected_parent} to {head}", 409
            )

        action: dict[str, Any] = {
            "action": "update",
            "file_path": path,
            "content": content,
            "encoding": "text",
        }
        if last_commit_id:
            action["last_commit_id"] = last_commit_id

        data = await self._request_json(
            "POST",
            f"/projects/{_encode(project)}/repository/commits",
            payload={
                "branch": branch,
                "commit_message": message,
                "actions": [action],
            },
        )
        commit_id = data.get("id")
        logger.info("[GitLab] Committed %s on %s as %s", path, branch, commit_id)
        return commit_id
