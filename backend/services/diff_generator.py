"""
Diff Generator Service - Unified diffs between pre- and post-edit file content
"""

from __future__ import annotations

from difflib import unified_diff

from .range_splicer import normalize_newlines


class DiffGenerator:
    """Generate unified diffs for applied and reverted fixes"""

    def generate_diff(
        self,
        file_path: str,
        before: str,
        after: str,
    ) -> str:
        """Generate a unified diff; CRLF/LF differences are not reported"""
        original_lines = normalize_newlines(before).splitlines(keepends=True)
        new_lines = normalize_newlines(after).splitlines(keepends=True)

        # Ensure last lines have newlines for proper diff
        if original_lines and not original_lines[-1].endswith("\n"):
            original_lines[-1] += "\n"
        if new_lines and not new_lines[-1].endswith("\n"):
            new_lines[-1] += "\n"

        return "".join(
            unified_diff(
                original_lines,
                new_lines,
                fromfile=f"a/{file_path}",
                tofile=f"b/{file_path}",
            )
        )
