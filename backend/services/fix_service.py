"""
Fix Service - Apply review fixes to a merge request branch and undo them

Apply:  fetch -> verify -> splice -> (dry run preview | commit -> record undo)
Undo:   load record -> verify against applied state -> splice back -> commit

There is no locking. Every mutation is preceded by the ConcurrencyGuard
checks and committed with the fetched head as the expected parent, so a
concurrent writer makes one side fail with ConflictError.
"""

from __future__ import annotations

import logging
from typing import Any

from models.fix import (
    ApplyFixRequest,
    ApplyFixResponse,
    FixSuggestion,
    SnippetRequest,
    SuggestFixRequest,
    UndoFixResponse,
    UndoRecord,
)
from models.snippet import Snippet

from .concurrency_guard import ConcurrencyGuard
from .diff_generator import DiffGenerator
from .errors import (
    ConflictError,
    InvalidRangeError,
    NotFoundError,
    StoreUnavailableError,
    UpstreamError,
)
from .gitlab_client import ParentMismatchError, RepositoryError
from .range_splicer import (
    block_text,
    code_to_lines,
    detect_newline,
    has_trailing_newline,
    insert,
    inserted_range,
    join_lines,
    splice,
    split_lines,
)
from .snippet_builder import build_snippet
from .undo_store import UndoRecordStore

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_LINES = 3


def default_commit_message(file_path: str, start_line: int, end_line: int) -> str:
    return f"fix: apply review suggestion to {file_path}:{start_line}-{end_line}"


def revert_commit_message(file_path: str) -> str:
    return f"revert: undo AI fix for {file_path}"


class FixService:
    """Apply and undo engine for AI-drafted review fixes"""

    def __init__(
        self,
        repository,
        undo_records: UndoRecordStore | None,
        suggestions=None,
        context_lines: int = DEFAULT_CONTEXT_LINES,
    ):
        self.repository = repository
        self.undo_records = undo_records
        self.suggestions = suggestions
        self.context_lines = context_lines
        self.guard = ConcurrencyGuard()
        self.diff_generator = DiffGenerator()

    # ========== Repository Helpers ==========

    async def _call_repository(self, operation: str, coro):
        """Await a repository call, mapping its failures to FixErrors"""
        try:
            return await coro
        except ParentMismatchError as e:
            logger.info("[FixService] %s rejected by remote: %s", operation, e)
            raise ConflictError("Branch advanced before the commit could be written") from e
        except RepositoryError as e:
            logger.error("[FixService] %s failed: %s", operation, e)
            raise UpstreamError(str(e), e.status_code or 502) from e

    async def _source_branch(self, project: str, mr_iid: str) -> str:
        return await self._call_repository(
            "Resolve source branch",
            self.repository.get_merge_request_source_branch(project, mr_iid),
        )

    async def _branch_head(self, project: str, branch: str) -> str:
        return await self._call_repository(
            "Fetch branch head", self.repository.get_branch_head(project, branch)
        )

    # ========== Snippet / Suggestion ==========

    async def get_snippet(self, project: str, mr_iid: str, request: SnippetRequest) -> Snippet:
        """Snippet of the file at the current head of the MR source branch"""
        branch = await self._source_branch(project, mr_iid)
        head = await self._branch_head(project, branch)
        remote_file = await self._call_repository(
            "Fetch file", self.repository.get_file(project, request.file_path, head)
        )
        context_before = request.context_before
        context_after = request.context_after
        return build_snippet(
            request.file_path,
            head,
            split_lines(remote_file.content),
            request.start_line,
            request.end_line,
            self.context_lines if context_before is None else context_before,
            self.context_lines if context_after is None else context_after,
        )

    async def suggest_fix(
        self, project: str, mr_iid: str, request: SuggestFixRequest
    ) -> FixSuggestion:
        """Ask the suggestion service for a replacement of the highlighted range"""
        if self.suggestions is None:
            raise UpstreamError("Suggestion service not configured", 503)

        remote_file = await self._call_repository(
            "Fetch file", self.repository.get_file(project, request.file_path, request.ref)
        )
        file_lines = split_lines(remote_file.content)
        if request.end_line < request.start_line or request.end_line > len(file_lines):
            raise InvalidRangeError(
                f"Lines {request.start_line}-{request.end_line} are outside "
                f"{request.file_path} ({len(file_lines)} lines)"
            )

        snippet = build_snippet(
            request.file_path,
            request.ref,
            file_lines,
            request.start_line,
            request.end_line,
            self.context_lines,
            self.context_lines,
        )
        suggestion = await self.suggestions.suggest_fix(snippet, request.comment)
        suggestion.original_code = block_text(file_lines[request.start_line - 1 : request.end_line])
        suggestion.snippet = snippet
        return suggestion

    # ========== Apply ==========

    async def apply_fix(
        self, project: str, mr_iid: str, request: ApplyFixRequest
    ) -> ApplyFixResponse:
        """Apply updated_code over start_line..end_line on the MR source branch"""
        file_path = request.file_path

        # Fetching
        branch = await self._source_branch(project, mr_iid)
        head = await self._branch_head(project, branch)
        remote_file = await self._call_repository(
            "Fetch file", self.repository.get_file(project, file_path, head)
        )
        before = remote_file.content
        file_lines = split_lines(before)

        # Verifying
        self.guard.verify_branch_head(
            request.ref,
            head,
            reason="Branch advanced since the edit context was captured",
        )
        if not 1 <= request.start_line <= request.end_line <= len(file_lines):
            raise InvalidRangeError(
                f"Lines {request.start_line}-{request.end_line} are outside "
                f"{file_path} ({len(file_lines)} lines)"
            )
        self.guard.verify_block(
            file_lines, request.start_line, request.end_line, request.original_code
        )

        # Splicing
        replacement = code_to_lines(request.updated_code)
        start_index = request.start_line - 1
        new_lines = splice(file_lines, start_index, request.end_line - 1, replacement)
        updated_start, updated_end = inserted_range(start_index, replacement)

        newline = detect_newline(before)
        trailing = has_trailing_newline(before)
        after = join_lines(new_lines, newline, trailing)
        diff = self.diff_generator.generate_diff(file_path, before, after)
        commit_message = request.commit_message or default_commit_message(
            file_path, request.start_line, request.end_line
        )

        if request.dry_run:
            logger.info(
                "[FixService] Dry run for %s:%d-%d on %s",
                file_path, request.start_line, request.end_line, branch,
            )
            return ApplyFixResponse(
                diff=diff,
                commit_message=commit_message,
                snippet=self._snippet(file_path, head, new_lines, updated_start, updated_end),
                dry_run=True,
            )

        # Committing
        commit_sha = await self._call_repository(
            "Commit fix",
            self.repository.commit_file_update(
                project,
                branch,
                file_path,
                after,
                head,
                commit_message,
                last_commit_id=remote_file.last_commit_id,
            ),
        )
        logger.info(
            "[FixService] Applied fix to %s:%d-%d on %s as %s",
            file_path, request.start_line, request.end_line, branch, commit_sha,
        )

        # RecordingUndo
        record = UndoRecord(
            project_ref=str(project),
            mr_ref=str(mr_iid),
            branch=branch,
            file_path=file_path,
            start_line=request.start_line,
            end_line=request.end_line,
            updated_start_line=updated_start,
            updated_end_line=updated_end,
            original_code=block_text(file_lines[start_index : request.end_line]),
            updated_code=block_text(replacement),
            previous_commit_id=head,
            applied_commit_id=commit_sha,
            newline=newline,
            trailing_newline=trailing,
        )
        undo_token = await self._record_undo(record)

        return ApplyFixResponse(
            diff=diff,
            commit_message=commit_message,
            commit_sha=commit_sha,
            snippet=self._snippet(
                file_path, commit_sha or branch, new_lines, updated_start, updated_end
            ),
            undo_token=undo_token,
        )

    async def _record_undo(self, record: UndoRecord) -> str | None:
        """Persist the undo record; an unavailable store never fails the apply"""
        if self.undo_records is None:
            logger.warning("[FixService] No undo store configured - fix is not reversible")
            return None
        try:
            return await self.undo_records.save(record)
        except StoreUnavailableError as e:
            logger.warning(
                "[FixService] Undo store unavailable, fix to %s is not reversible: %s",
                record.file_path, e,
            )
            return None

    # ========== Undo ==========

    async def undo_fix(self, project: str, mr_iid: str, token: str) -> UndoFixResponse:
        """Revert the fix identified by token if the branch is unchanged since"""
        if self.undo_records is None:
            raise StoreUnavailableError("Undo store not configured")

        record = await self.undo_records.load(token)
        if record is None or record.project_ref != str(project) or record.mr_ref != str(mr_iid):
            raise NotFoundError("Undo token not found or expired")

        branch = await self._source_branch(project, mr_iid)
        if branch != record.branch:
            raise ConflictError("Branch changed since the fix was applied")

        head = await self._branch_head(project, branch)
        self.guard.verify_branch_head(
            record.applied_commit_id,
            head,
            reason="New commits were pushed after the fix; undo unavailable",
        )

        remote_file = await self._call_repository(
            "Fetch file", self.repository.get_file(project, record.file_path, head)
        )
        before = remote_file.content
        file_lines = split_lines(before, record.trailing_newline)
        if (
            not file_lines
            and not record.trailing_newline
            and record.updated_end_line >= record.updated_start_line
        ):
            # "" without a final terminator also serializes one blank line
            file_lines = [""]
        self.guard.verify_block(
            file_lines,
            record.updated_start_line,
            record.updated_end_line,
            record.updated_code,
            reason="Fixed content changed since it was applied",
        )

        # Recorded block is exact and never empty: apply rejects empty ranges
        original = record.original_code.split("\n")
        start_index = record.updated_start_line - 1
        if record.updated_end_line < record.updated_start_line:
            new_lines = insert(file_lines, start_index, original)
        else:
            new_lines = splice(file_lines, start_index, record.updated_end_line - 1, original)
        restored_start, restored_end = inserted_range(start_index, original)

        after = join_lines(new_lines, record.newline, record.trailing_newline)
        diff = self.diff_generator.generate_diff(record.file_path, before, after)
        commit_message = revert_commit_message(record.file_path)

        commit_sha = await self._call_repository(
            "Commit revert",
            self.repository.commit_file_update(
                project,
                branch,
                record.file_path,
                after,
                head,
                commit_message,
                last_commit_id=remote_file.last_commit_id,
            ),
        )
        logger.info("[FixService] Reverted fix to %s on %s as %s", record.file_path, branch, commit_sha)

        try:
            await self.undo_records.discard(token)
        except StoreUnavailableError as e:
            logger.warning("[FixService] Failed to discard undo record after revert: %s", e)

        return UndoFixResponse(
            diff=diff,
            commit_message=commit_message,
            commit_sha=commit_sha,
            snippet=self._snippet(
                record.file_path, commit_sha, new_lines, restored_start, restored_end
            ),
        )

    def _snippet(
        self, path: str, ref: str, lines: list[str], start_line: int, end_line: int
    ) -> Snippet:
        return build_snippet(
            path, ref, lines, start_line, end_line, self.context_lines, self.context_lines
        )


def create_fix_service(
    config: dict[str, Any],
    repository,
    undo_records: UndoRecordStore | None,
    suggestions=None,
) -> FixService:
    return FixService(
        repository,
        undo_records,
        suggestions=suggestions,
        context_lines=config.get("fix", {}).get("contextLines", DEFAULT_CONTEXT_LINES),
    )
