"""
Suggestion Extraction Module

This module turns an original/suggested pair of line windows into the
smallest block worth rendering inside a GitHub ```suggestion``` fence.

Design Decisions:
- Every operation is a pure function over two line sequences
- Output is capped (default 3 lines) so suggestions stay one-click committable
- Oversized changes degrade to a single line instead of producing nothing
- Selection is an ordered chain of strategies; the first bounded result wins
"""

from dataclasses import dataclass
from typing import Callable, List, NamedTuple, Optional, Sequence, Tuple

from pr_review_tool.config import get_settings
from pr_review_tool.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_LINES = 3
DEFAULT_CONTEXT_LINES = 1


class DiffSpan(NamedTuple):
    """Half-open ``[start, end)`` range of differing lines."""
    start: int
    end: int

    def __len__(self) -> int:
        return self.end - self.start


def find_first_different_line_index(
    original: Sequence[str],
    suggested: Sequence[str]
) -> Optional[int]:
    """
    Find the index of the first line that differs between two windows.

    Args:
        original: Original code lines
        suggested: Suggested code lines

    Returns:
        Index of the first differing line. When one window is a prefix of
        the other, the length of the shorter one. None if both are identical.
    """
    min_length = min(len(original), len(suggested))

    for i in range(min_length):
        if original[i] != suggested[i]:
            return i

    if len(original) != len(suggested):
        return min_length

    return None


def find_diff_span(
    original: Sequence[str],
    suggested: Sequence[str]
) -> Optional[DiffSpan]:
    """
    Find the first contiguous run of differing lines.

    The run starts at the first difference and grows while the next
    position exists in both windows and still differs. A later matching
    line ends the run; nothing after it is considered.

    Returns:
        DiffSpan over the run, or None if the windows are identical
    """
    start = find_first_different_line_index(original, suggested)
    if start is None:
        return None

    end = start
    last_shared = min(len(original), len(suggested)) - 1
    while end < last_shared and original[end + 1] != suggested[end + 1]:
        end += 1

    return DiffSpan(start, end + 1)


def find_smallest_diff(
    original: Sequence[str],
    suggested: Sequence[str],
    max_lines: int = DEFAULT_MAX_LINES
) -> List[str]:
    """
    Find the smallest block of suggested lines covering the first change.

    Args:
        original: Original code lines
        suggested: Suggested code lines
        max_lines: Largest block returned as-is

    Returns:
        The suggested lines of the first differing run when it fits in
        ``max_lines``, otherwise only its first line. Empty when the windows
        are identical or the suggested window has no line at the change.
    """
    span = find_diff_span(original, suggested)
    if span is None or span.start >= len(suggested):
        return []

    if len(span) <= max_lines:
        return list(suggested[span.start:span.end])

    # Too large to commit in one click, keep the first changed line only
    return [suggested[span.start]]


def extract_minimal_changes(
    original: Sequence[str],
    suggested: Sequence[str],
    context_lines: int = DEFAULT_CONTEXT_LINES
) -> List[str]:
    """
    Trim the common prefix and suffix and keep the changed core.

    The core of the suggested window is widened by up to ``context_lines``
    unchanged lines on each side, clamped to the window.

    Args:
        original: Original code lines
        suggested: Suggested code lines
        context_lines: Unchanged lines kept before and after the core

    Returns:
        Windowed slice of the suggested lines, or an empty list when
        nothing changed
    """
    min_length = min(len(original), len(suggested))

    prefix_length = 0
    while prefix_length < min_length and original[prefix_length] == suggested[prefix_length]:
        prefix_length += 1

    suffix_length = 0
    while (
        suffix_length < min_length - prefix_length
        and original[len(original) - 1 - suffix_length]
        == suggested[len(suggested) - 1 - suffix_length]
    ):
        suffix_length += 1

    original_core = len(original) - prefix_length - suffix_length
    suggested_core = len(suggested) - prefix_length - suffix_length
    if original_core == 0 and suggested_core == 0:
        return []

    start = max(0, prefix_length - context_lines)
    end = min(len(suggested), len(suggested) - suffix_length + context_lines)

    return list(suggested[start:end])


def build_replacement_lines(
    original: Sequence[str],
    keyword: str,
    replacement: str
) -> List[str]:
    """
    Apply a keyword-indexed replacement to a window of lines.

    The replacement may span several lines, so the window is joined,
    substituted and split again.
    """
    if not keyword:
        return list(original)
    text = "\n".join(original)
    return text.replace(keyword, replacement).split("\n")


# =============================================================================
# Selection chain
# =============================================================================

@dataclass(frozen=True)
class SuggestionInput:
    """Arguments shared by every selection strategy."""
    original: Tuple[str, ...]
    suggested: Tuple[str, ...]
    keyword: Optional[str]
    max_lines: int
    context_lines: int
    replacement: Optional[str] = None


SuggestionStrategy = Callable[[SuggestionInput], Optional[List[str]]]


def keyword_line_strategy(data: SuggestionInput) -> Optional[List[str]]:
    """
    Emit the suggested lines for the first original line holding the keyword.

    That is a single line, unless the replacement splits the matched line
    in which case every line it expands into is emitted.
    """
    if not data.keyword:
        return None

    for index, line in enumerate(data.original):
        if data.keyword in line:
            span = 1
            if data.replacement is not None:
                span = len(build_replacement_lines([line], data.keyword, data.replacement))
            if span <= data.max_lines and index + span <= len(data.suggested):
                return list(data.suggested[index:index + span])
            return None

    return None


def smallest_diff_strategy(data: SuggestionInput) -> Optional[List[str]]:
    lines = find_smallest_diff(data.original, data.suggested, data.max_lines)
    if 0 < len(lines) <= data.max_lines:
        return lines
    return None


def first_difference_strategy(data: SuggestionInput) -> Optional[List[str]]:
    index = find_first_different_line_index(data.original, data.suggested)
    if index is not None and index < len(data.suggested):
        return [data.suggested[index]]
    return None


def prefix_suffix_strategy(data: SuggestionInput) -> Optional[List[str]]:
    lines = extract_minimal_changes(data.original, data.suggested, data.context_lines)
    return lines[:data.max_lines]


SUGGESTION_STRATEGIES: Tuple[SuggestionStrategy, ...] = (
    keyword_line_strategy,
    smallest_diff_strategy,
    first_difference_strategy,
    prefix_suffix_strategy,
)


class MinimalDiffExtractor:
    """
    Builds capped suggestion blocks from original/suggested line windows.

    Usage:
        extractor = MinimalDiffExtractor(max_lines=3)
        lines = extractor.select(original, suggested, keyword="confirm(")
    """

    def __init__(
        self,
        max_lines: int = DEFAULT_MAX_LINES,
        context_lines: int = DEFAULT_CONTEXT_LINES,
        strategies: Sequence[SuggestionStrategy] = SUGGESTION_STRATEGIES
    ):
        if max_lines < 1:
            raise ValueError(f"max_lines must be at least 1, got {max_lines}")
        if context_lines < 0:
            raise ValueError(f"context_lines must not be negative, got {context_lines}")
        self.max_lines = max_lines
        self.context_lines = context_lines
        self.strategies = tuple(strategies)

    def first_different_line_index(
        self,
        original: Sequence[str],
        suggested: Sequence[str]
    ) -> Optional[int]:
        return find_first_different_line_index(original, suggested)

    def smallest_diff(self, original: Sequence[str], suggested: Sequence[str]) -> List[str]:
        return find_smallest_diff(original, suggested, self.max_lines)

    def minimal_changes(self, original: Sequence[str], suggested: Sequence[str]) -> List[str]:
        return extract_minimal_changes(original, suggested, self.context_lines)

    def select(
        self,
        original: Sequence[str],
        suggested: Sequence[str],
        keyword: Optional[str] = None,
        replacement: Optional[str] = None
    ) -> List[str]:
        """
        Pick the tightest renderable suggestion for a pair of windows.

        ``replacement`` is the text the keyword was replaced with; when it
        spans several lines the keyword step emits all of them.

        Strategies are tried in order (keyword line, smallest diff, first
        difference, prefix/suffix trim) until one yields a non-empty block
        within the line cap.

        Returns:
            Between 0 and ``max_lines`` suggested lines. Empty only when
            there is nothing to suggest.
        """
        data = SuggestionInput(
            original=tuple(original),
            suggested=tuple(suggested),
            keyword=keyword,
            max_lines=self.max_lines,
            context_lines=self.context_lines,
            replacement=replacement,
        )

        if data.original == data.suggested:
            return []

        for strategy in self.strategies:
            lines = strategy(data)
            if lines and len(lines) <= self.max_lines:
                logger.debug(
                    "Selected suggestion",
                    strategy=strategy.__name__,
                    num_lines=len(lines)
                )
                return lines

        return []


# Singleton instance
_extractor_instance: Optional[MinimalDiffExtractor] = None


def get_diff_extractor() -> MinimalDiffExtractor:
    """Get the singleton MinimalDiffExtractor configured from settings."""
    global _extractor_instance
    if _extractor_instance is None:
        settings = get_settings()
        _extractor_instance = MinimalDiffExtractor(
            max_lines=settings.suggestion_max_lines,
            context_lines=settings.suggestion_context_lines
        )
    return _extractor_instance
