"""Models module - Pydantic data models"""

from .snippet import Snippet, SnippetLine
from .fix import (
    ApplyFixRequest,
    ApplyFixResponse,
    FixSuggestion,
    SnippetRequest,
    SuggestFixRequest,
    UndoFixRequest,
    UndoFixResponse,
    UndoRecord,
)

__all__ = [
    # Snippet models
    "Snippet",
    "SnippetLine",
    # Fix models
    "ApplyFixRequest",
    "ApplyFixResponse",
    "FixSuggestion",
    "SnippetRequest",
    "SuggestFixRequest",
    "UndoFixRequest",
    "UndoFixResponse",
    "UndoRecord",
]
