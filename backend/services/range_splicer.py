"""
Range Splicer - Replace line ranges and keep the file's newline convention

All indices handed to splice/insert are 0-based. Conversions to the 1-based
line numbers used in requests and undo records happen in the callers.
"""

from __future__ import annotations

CRLF = "\r\n"
LF = "\n"


class RangeError(ValueError):
    """Splice indices do not describe a range inside the line list"""


def splice(
    file_lines: list[str],
    start: int,
    end: int,
    replacement: list[str],
) -> list[str]:
    """Replace file_lines[start..end] (inclusive) with replacement"""
    if start < 0:
        raise RangeError(f"Range start {start} is negative")
    if end < start:
        raise RangeError(f"Range end {end} is before start {start}")
    if end >= len(file_lines):
        raise RangeError(f"Range end {end} is past the last line ({len(file_lines) - 1})")

    return file_lines[:start] + list(replacement) + file_lines[end + 1 :]


def insert(file_lines: list[str], index: int, new_lines: list[str]) -> list[str]:
    """Insert new_lines before file_lines[index]; index may equal len(file_lines)"""
    if index < 0 or index > len(file_lines):
        raise RangeError(f"Insert position {index} is outside 0..{len(file_lines)}")
    return file_lines[:index] + list(new_lines) + file_lines[index:]


def inserted_range(start: int, replacement: list[str]) -> tuple[int, int]:
    """1-based range occupied by replacement after splicing at 0-based start.

    An empty replacement yields (start + 1, start): end before start.
    """
    return start + 1, start + len(replacement)


# ========== Newline Codec ==========


def detect_newline(raw: str) -> str:
    """CRLF when the content carries any CRLF, LF otherwise"""
    return CRLF if CRLF in raw else LF


def has_trailing_newline(raw: str) -> bool:
    return raw.endswith(LF)


def normalize_newlines(text: str) -> str:
    return text.replace(CRLF, LF)


def split_lines(raw: str, trailing: bool | None = None) -> list[str]:
    """Split file content into lines without terminators.

    trailing=False marks content serialized without a final terminator, so a
    final newline there ends an empty last line instead of terminating one.
    """
    text = normalize_newlines(raw)
    if not text:
        return []
    if text.endswith(LF) and trailing is not False:
        text = text[:-1]
    return text.split(LF)


def join_lines(lines: list[str], newline: str, trailing: bool) -> str:
    """Serialize lines back using the original newline style and trailing flag"""
    if not lines:
        return ""
    text = newline.join(lines)
    if trailing:
        text += newline
    return text


def code_to_lines(code: str) -> list[str]:
    """Lines of a caller-supplied code block; "" is zero lines"""
    text = normalize_newlines(code)
    if text == "":
        return []
    if text.endswith(LF):
        text = text[:-1]
    return text.split(LF)


def block_text(lines: list[str]) -> str:
    return LF.join(lines)
