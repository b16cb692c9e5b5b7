"""Services module - Business logic layer"""

from .config_manager import ConfigManager
from .diff_generator import DiffGenerator
from .fix_service import FixService
from .gitlab_client import GitLabClient
from .suggestion_service import SuggestionService
from .undo_store import MemoryUndoStore, RedisUndoStore, UndoRecordStore

__all__ = [
    "ConfigManager",
    "DiffGenerator",
    "FixService",
    "GitLabClient",
    "SuggestionService",
    "MemoryUndoStore",
    "RedisUndoStore",
    "UndoRecordStore",
]
