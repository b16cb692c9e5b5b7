"""Fix apply/undo data models"""

from __future__ import annotations

from pydantic import BaseModel, Field

from .snippet import Snippet


class SnippetRequest(BaseModel):
    """Request for a highlighted window of a file on the MR source branch"""

    file_path: str
    start_line: int = Field(ge=1)
    end_line: int = Field(ge=0)
    context_before: int | None = Field(default=None, ge=0)
    context_after: int | None = Field(default=None, ge=0)


class SuggestFixRequest(BaseModel):
    """Request for an AI-drafted replacement of a highlighted range"""

    file_path: str
    ref: str
    start_line: int = Field(ge=1)
    end_line: int = Field(ge=1)
    comment: str


class FixSuggestion(BaseModel):
    """AI-drafted replacement for a highlighted range"""

    summary: str
    updated_code: str
    warnings: list[str] = []
    original_code: str = ""
    snippet: Snippet | None = None


class ApplyFixRequest(BaseModel):
    """Request to apply a replacement to a line range"""

    file_path: str
    ref: str  # commit the snippet was generated against
    start_line: int
    end_line: int
    original_code: str
    updated_code: str  # may be empty: pure deletion
    commit_message: str | None = None
    dry_run: bool = False


class ApplyFixResponse(BaseModel):
    """Outcome of an applied or previewed fix"""

    diff: str
    commit_message: str
    commit_sha: str | None = None  # None on dry run
    snippet: Snippet
    undo_token: str | None = None  # None on dry run or undo store outage
    dry_run: bool = False


class UndoFixRequest(BaseModel):
    """Request to revert a previously applied fix"""

    undo_token: str = Field(min_length=1)


class UndoFixResponse(BaseModel):
    """Outcome of a reverted fix"""

    diff: str
    commit_message: str
    commit_sha: str
    snippet: Snippet


class UndoRecord(BaseModel):
    """State needed to reverse exactly one applied fix"""

    project_ref: str
    mr_ref: str
    branch: str
    file_path: str
    start_line: int  # original pre-edit range, 1-indexed
    end_line: int
    updated_start_line: int  # range of the inserted text post-edit
    updated_end_line: int  # < updated_start_line when the fix deleted all lines
    original_code: str  # LF-normalized
    updated_code: str  # LF-normalized
    previous_commit_id: str
    applied_commit_id: str | None = None
    newline: str = "\n"
    trailing_newline: bool = True
