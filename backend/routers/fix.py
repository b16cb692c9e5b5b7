"""Merge request fix API endpoints"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from models.fix import (
    ApplyFixRequest,
    ApplyFixResponse,
    FixSuggestion,
    SnippetRequest,
    SuggestFixRequest,
    UndoFixRequest,
    UndoFixResponse,
)
from models.snippet import Snippet
from services.config_manager import ConfigManager
from services.errors import FixError
from services.fix_service import FixService, create_fix_service
from services.gitlab_client import GitLabClient
from services.suggestion_service import SuggestionService
from services.undo_store import DEFAULT_TTL_SECONDS, UndoRecordStore, UndoStore

router = APIRouter()

# Shared undo store, connected during application startup
_undo_store: UndoStore | None = None


def set_undo_store(store: UndoStore | None):
    """Set the undo store shared by all fix requests"""
    global _undo_store
    _undo_store = store


def get_undo_store() -> UndoStore | None:
    return _undo_store


def get_fix_service() -> FixService:
    """Build a FixService from the current configuration"""
    config = ConfigManager.get_instance().get_config()
    undo_records = None
    if _undo_store is not None:
        undo_cfg = config.get("undo", {})
        undo_records = UndoRecordStore(
            _undo_store,
            ttl_seconds=undo_cfg.get("ttlSeconds", DEFAULT_TTL_SECONDS),
            key_prefix=undo_cfg.get("keyPrefix", "fix_undo:"),
        )
    return create_fix_service(
        config,
        GitLabClient.from_config(config),
        undo_records,
        suggestions=SuggestionService(config),
    )


def to_http_exception(error: FixError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.message)


@router.post("/snippet", response_model=Snippet)
async def get_snippet(
    project_id: str,
    mr_iid: str,
    request: SnippetRequest,
    fix_service: FixService = Depends(get_fix_service),
) -> Snippet:
    """Get a highlighted window of a file at the MR source branch head"""
    try:
        return await fix_service.get_snippet(project_id, mr_iid, request)
    except FixError as e:
        raise to_http_exception(e) from e


@router.post("/suggest", response_model=FixSuggestion)
async def suggest_fix(
    project_id: str,
    mr_iid: str,
    request: SuggestFixRequest,
    fix_service: FixService = Depends(get_fix_service),
) -> FixSuggestion:
    """Draft a replacement for the highlighted lines from a reviewer comment"""
    try:
        return await fix_service.suggest_fix(project_id, mr_iid, request)
    except FixError as e:
        raise to_http_exception(e) from e


@router.post("/apply", response_model=ApplyFixResponse)
async def apply_fix(
    project_id: str,
    mr_iid: str,
    request: ApplyFixRequest,
    fix_service: FixService = Depends(get_fix_service),
) -> ApplyFixResponse:
    """Apply (or preview with dry_run) a replacement as a commit on the MR source branch"""
    try:
        return await fix_service.apply_fix(project_id, mr_iid, request)
    except FixError as e:
        raise to_http_exception(e) from e


@router.post("/undo", response_model=UndoFixResponse)
async def undo_fix(
    project_id: str,
    mr_iid: str,
    request: UndoFixRequest,
    fix_service: FixService = Depends(get_fix_service),
) -> UndoFixResponse:
    """Revert a previously applied fix identified by its undo token"""
    try:
        return await fix_service.undo_fix(project_id, mr_iid, request.undo_token)
    except FixError as e:
        raise to_http_exception(e) from e
