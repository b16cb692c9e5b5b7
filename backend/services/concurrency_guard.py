"""
Concurrency Guard - Optimistic checks run before any branch mutation

Two independent checks: the branch head must still be the commit the edit
was prepared against, and the target block must still hold the expected
text. Either failing raises ConflictError; nothing is retried or merged.
"""

from __future__ import annotations

import logging

from .errors import ConflictError
from .range_splicer import LF, block_text, normalize_newlines

logger = logging.getLogger(__name__)


def _block_matches(current: str, expected_code: str) -> bool:
    """Equal after CRLF normalization, ignoring one trailing newline on expected"""
    expected = normalize_newlines(expected_code)
    if expected == current:
        return True
    return expected.endswith(LF) and expected[:-1] == current


class ConcurrencyGuard:
    """Compare expected vs. actual branch head and block content"""

    def verify_branch_head(
        self,
        expected: str | None,
        actual: str,
        reason: str = "Branch advanced since the edit context was captured",
    ) -> None:
        if expected is None:
            return
        if expected != actual:
            logger.info("[Guard] Branch head mismatch: expected %s, found %s", expected, actual)
            raise ConflictError(reason)

    def verify_block(
        self,
        file_lines: list[str],
        start_line: int,
        end_line: int,
        expected_code: str,
        reason: str = "Target content changed since it was captured",
    ) -> None:
        """Check lines start_line..end_line (1-based) against expected_code.

        end_line < start_line denotes an empty block at start_line.
        """
        if start_line < 1 or start_line > len(file_lines) + 1:
            logger.info("[Guard] Block start %d outside file of %d lines", start_line, len(file_lines))
            raise ConflictError(reason)
        if end_line >= start_line and end_line > len(file_lines):
            logger.info("[Guard] Block end %d outside file of %d lines", end_line, len(file_lines))
            raise ConflictError(reason)

        current = block_text(file_lines[start_line - 1 : end_line]) if end_line >= start_line else ""
        if not _block_matches(current, expected_code):
            logger.info("[Guard] Block %d-%d differs from expected content", start_line, end_line)
            raise ConflictError(reason)
