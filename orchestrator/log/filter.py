"""
Line filtering for captured game logs.

A line is dropped when any exclusion pattern is found anywhere in it
(``re.search`` semantics, case-sensitive). Everything else is kept in its
original order. These functions hold no state and are safe to call from
several threads at once.
"""

import re
from typing import Iterable, List, Optional, Pattern, Tuple, Union

PatternLike = Union[str, Pattern[str]]


def compile_patterns(patterns: Optional[Iterable[PatternLike]]) -> Tuple[Pattern[str], ...]:
    """
    Compiles exclusion patterns, dropping duplicates while keeping their order.

    :param patterns: Regex strings or already compiled patterns.
    :return: A tuple of compiled patterns.
    :raises re.error: If a pattern is not a valid regular expression.
    """
    compiled: List[Pattern[str]] = []
    seen = set()
    for pattern in patterns or ():
        regex = re.compile(pattern)
        if regex.pattern in seen:
            continue
        seen.add(regex.pattern)
        compiled.append(regex)
    return tuple(compiled)


def filter_lines(lines: Optional[Iterable[str]], patterns: Optional[Iterable[PatternLike]]) -> List[str]:
    """
    Returns the lines that match none of the exclusion patterns.

    :param lines: The raw log lines. None or empty yields an empty list.
    :param patterns: The exclusion patterns.
    :return: The retained lines, in input order.
    """
    if not lines:
        return []
    compiled = compile_patterns(patterns)
    if not compiled:
        return list(lines)
    return [line for line in lines if not any(regex.search(line) for regex in compiled)]


def split_lines(text: Optional[str]) -> List[str]:
    """Splits on ``\\n`` only, dropping one ``\\r`` before it and the empty tail after a final newline."""
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def filter_text(text: Optional[str], patterns: Optional[Iterable[PatternLike]]) -> str:
    """
    Filters a whole log file's contents.

    Lines end at ``\\n`` only (one trailing ``\\r`` is dropped), so a carriage
    return inside a line keeps the line whole. Retained lines are joined with
    newlines and terminated by one; if nothing is retained the result is the
    empty string.
    """
    kept = filter_lines(split_lines(text), patterns)
    if not kept:
        return ""
    return "\n".join(kept) + "\n"
