"""
cleaner.py - Line Cleaning for External Blocklist Sources

External sources publish plain text lists (IP addresses, ranges, P2P
entries) decorated with headers, comments and blank lines. This module
reduces a raw body to the ordered list of meaningful lines that gets
merged into the published blocklist.

Key Operations:
    1. Drop the UTF-8 BOM and surrounding whitespace
    2. Remove full-line comments (#, ! and ; lines)
    3. Remove blank lines
    4. Strip trailing inline comments ("1.2.3.4 # scanner" -> "1.2.3.4")

Order of the remaining lines is preserved: the merge step writes them
verbatim, in the order received.
"""
from __future__ import annotations

import re
from typing import Final, NamedTuple


# =============================================================================
# REGEX PATTERNS
# =============================================================================

#: Full-line comment: starts with #, ! or ;
COMMENT_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\s*[#!;]")

#: Trailing inline comment: match " # comment" (whitespace on both sides of #)
#: Example: "9.9.9.9 # resolver" -> "9.9.9.9"
TRAILING_COMMENT_PATTERN: Final[re.Pattern[str]] = re.compile(r"\s+#\s+.*$")

#: P2P entry: "description:first-last", the description may contain # or ;
P2P_RANGE_PATTERN: Final[re.Pattern[str]] = re.compile(r":[0-9A-Fa-f.:]+\s*-\s*[0-9A-Fa-f.:]+$")

BOM: Final[str] = "\ufeff"


# =============================================================================
# DATA STRUCTURES
# =============================================================================

class CleanResult(NamedTuple):
    """
    Result of cleaning a single line.

    Attributes:
        line: Cleaned line, or None if discarded
        discarded: True if line was discarded
        reason: Reason for discard ("empty" or "comment"), or None if kept
    """
    line: str | None
    discarded: bool
    reason: str | None


class CleanStats(NamedTuple):
    """Statistics from cleaning one source body."""
    total_lines: int
    kept_lines: int
    comments_removed: int
    empty_removed: int
    trimmed: int


# =============================================================================
# CLEANING FUNCTIONS
# =============================================================================

def is_comment(line: str) -> bool:
    """
    Check if line is a full-line comment.

    Example:
        >>> is_comment("# Feodo Tracker Botnet C2 IP Blocklist")
        True
        >>> is_comment("9.9.9.9")
        False
    """
    return bool(COMMENT_PATTERN.match(line))


def strip_trailing_comment(line: str) -> str:
    """
    Remove a trailing inline comment.

    Only strips " # " comments surrounded by whitespace. P2P entries
    ending in a ":first-last" range are never cut, whatever their
    description contains.

    Example:
        >>> strip_trailing_comment("1.2.3.4 # scanner")
        '1.2.3.4'
        >>> strip_trailing_comment("Net#1:1.2.3.0-1.2.3.255")
        'Net#1:1.2.3.0-1.2.3.255'
        >>> strip_trailing_comment("Level 3 # 2:1.2.3.0-1.2.3.255")
        'Level 3 # 2:1.2.3.0-1.2.3.255'
    """
    if P2P_RANGE_PATTERN.search(line):
        return line
    match = TRAILING_COMMENT_PATTERN.search(line)
    if match:
        return line[:match.start()].rstrip()
    return line


def clean_line(line: str) -> tuple[CleanResult, bool]:
    """
    Clean a single raw line.

    Returns:
        Tuple of (CleanResult, was_trimmed)
    """
    original = line
    line = line.lstrip(BOM).strip()
    was_trimmed = len(line) != len(original) and len(line) > 0

    if not line:
        return CleanResult(None, True, "empty"), False

    if is_comment(line):
        return CleanResult(None, True, "comment"), False

    without_comment = strip_trailing_comment(line)
    if len(without_comment) != len(line):
        was_trimmed = True

    return CleanResult(without_comment, False, None), was_trimmed


def clean_lines(lines: list[str]) -> tuple[list[str], CleanStats]:
    """
    Clean a list of raw lines, preserving the order of kept lines.

    Example:
        >>> cleaned, stats = clean_lines(["# header", "", "9.9.9.9", "8.8.8.8 # dns"])
        >>> cleaned
        ['9.9.9.9', '8.8.8.8']
        >>> stats.comments_removed
        1
    """
    cleaned: list[str] = []
    comments = empty = trimmed = 0

    for line in lines:
        result, was_trimmed = clean_line(line)
        if was_trimmed:
            trimmed += 1
        if result.discarded:
            if result.reason == "comment":
                comments += 1
            else:
                empty += 1
        else:
            cleaned.append(result.line)  # type: ignore[arg-type]

    return cleaned, CleanStats(
        total_lines=len(lines),
        kept_lines=len(cleaned),
        comments_removed=comments,
        empty_removed=empty,
        trimmed=trimmed,
    )


def clean_text(body: str) -> tuple[list[str], CleanStats]:
    """Split a decoded body into lines and clean them."""
    return clean_lines(body.splitlines())
