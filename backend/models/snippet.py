"""Snippet data models"""

from __future__ import annotations

from pydantic import BaseModel


class SnippetLine(BaseModel):
    """A single line inside a snippet window"""

    line_number: int  # 1-indexed
    content: str
    highlight: bool = False


class Snippet(BaseModel):
    """Read-only window of a file around a highlighted range"""

    path: str
    ref: str  # commit or branch the content was read at
    highlight_start: int
    highlight_end: int
    lines: list[SnippetLine] = []
    start_line: int
    end_line: int
    total_lines: int
