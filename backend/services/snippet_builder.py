"""
Snippet Builder - Context window around a highlighted line range
"""

from __future__ import annotations

from models.snippet import Snippet, SnippetLine


def build_snippet(
    path: str,
    ref: str,
    lines: list[str],
    highlight_start: int,
    highlight_end: int,
    context_before: int = 3,
    context_after: int = 3,
) -> Snippet:
    """Build a Snippet of lines around [highlight_start, highlight_end] (1-based).

    highlight_end < highlight_start is a zero-width insertion point: the
    window is anchored on highlight_start and nothing is highlighted.
    """
    total_lines = len(lines)
    start = max(highlight_start, 1)
    degenerate = highlight_end < start
    anchor_end = start if degenerate else highlight_end

    start_index = max(start - 1 - context_before, 0)
    end_index = min(anchor_end + context_after - 1, total_lines - 1)

    snippet_lines = []
    for index in range(start_index, end_index + 1):
        line_number = index + 1
        snippet_lines.append(
            SnippetLine(
                line_number=line_number,
                content=lines[index],
                highlight=not degenerate and start <= line_number <= highlight_end,
            )
        )

    return Snippet(
        path=path,
        ref=ref,
        highlight_start=highlight_start,
        highlight_end=highlight_end,
        lines=snippet_lines,
        start_line=snippet_lines[0].line_number if snippet_lines else 0,
        end_line=snippet_lines[-1].line_number if snippet_lines else 0,
        total_lines=total_lines,
    )
