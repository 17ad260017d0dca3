"""
Pattern Check Module

Line-level and file-level checks run over pull request diffs.

Line checks scan added lines for a catalog of substrings and regular
expressions. File checks look at whole-file change statistics and patch
text. Both are plain string matching; there is no code analysis here.
"""

import re
from typing import Iterable, List, Optional, Pattern, Tuple

from pr_review_tool.config import get_settings
from pr_review_tool.logging_config import get_logger
from pr_review_tool.models import (
    CodePattern,
    CommentType,
    ParsedDiff,
    PatternMatch,
    PRFile,
    ReviewComment,
)

logger = get_logger(__name__)


DEFAULT_PATTERNS: Tuple[CodePattern, ...] = (
    CodePattern(
        name="native-confirm",
        pattern="confirm(",
        issue="Using browser's native confirm() dialog lacks proper accessibility support (WCAG 2.1)",
        context=(
            "Native browser dialogs cannot be styled, lack keyboard navigation control, "
            "and are not properly announced by screen readers. This creates barriers for "
            "users with disabilities and fails WCAG 2.1 success criteria 2.1.1 (Keyboard) "
            "and 4.1.2 (Name, Role, Value)."
        ),
        suggestion="Replace with a custom dialog component with proper ARIA attributes",
        code_examples=[
            "showAccessibleConfirmDialog('Are you sure?', () => {\n  // action on confirm\n});",
            "// Promise-based API for more complex flows\n"
            "showConfirmDialog('Are you sure?')\n"
            "  .then(() => {\n    // action on confirm\n  })\n"
            "  .catch(() => {\n    // action on cancel\n  });",
        ],
        line_suggestions={
            "if (confirm": "if (showAccessibleConfirmDialog",
            "confirm(": "showAccessibleConfirmDialog(",
        },
        action_items=["Replace native confirm() with accessible custom dialog"],
        tldr="Replace confirm() with accessible dialog for WCAG compliance",
    ),
    CodePattern(
        name="console-log",
        pattern="console.log(",
        issue="Development console.log statements in production code",
        context=(
            "Console statements are meant for debugging during development and should not "
            "be included in production code. They can expose sensitive information, impact "
            "performance, and create noise in browser consoles."
        ),
        suggestion="Remove console statements or use a proper logging library with configurable log levels",
        code_examples=["logger.debug('Debug info', { level: 'development' });"],
        line_suggestions={"console.log": "logger.debug"},
        action_items=["Remove console.log or replace with proper logging"],
        tldr="Remove debug logs from production code",
    ),
    CodePattern(
        name="todo-fixme",
        pattern=r"TODO|FIXME",
        is_regex=True,
        issue="TODO/FIXME comments in production code",
        context=(
            "TODO and FIXME comments indicate incomplete work or known issues that should be "
            "addressed before code is merged to production. Leaving these comments in the "
            "codebase creates technical debt and can lead to forgotten issues."
        ),
        suggestion=(
            "Address these comments before merging or create proper tracking issues "
            "in your issue management system"
        ),
        code_examples=["// Create a tracking issue instead\n// See issue #123: Implement feature X"],
        line_suggestions={"TODO": "See issue #123", "FIXME": "See issue #123"},
        action_items=["Address TODO/FIXME comments or create tracking issues"],
        tldr="Resolve or track TODO comments",
    ),
    CodePattern(
        name="unchecked-get-element",
        pattern="document.getElementById",
        issue="Unhandled DOM element access",
        context=(
            "Direct DOM access without checking if elements exist can lead to runtime errors "
            "if the element is not found. This is particularly problematic in dynamic "
            "applications where the DOM structure might change."
        ),
        suggestion="Add proper error handling for DOM operations",
        code_examples=[
            "const element = document.getElementById('element-id');\n"
            "if (element) {\n  element.addEventListener('click', handleClick);\n"
            "} else {\n  console.error('Element not found: element-id');\n}"
        ],
        line_suggestions={
            "document.getElementById": "const element = document.getElementById",
            ".addEventListener": "if (element) {\n  element.addEventListener",
        },
        action_items=[
            "Add null checks for DOM element access",
            "Consider using a utility function for safe element selection",
        ],
        tldr="Add error handling for DOM element access",
    ),
    CodePattern(
        name="repeated-query-selector",
        pattern=r"querySelector.*\(.*\)",
        is_regex=True,
        issue="Potential performance issue with repeated DOM queries",
        context=(
            "Repeatedly querying the DOM for the same elements can impact performance, "
            "especially in event handlers or loops. DOM queries are expensive operations "
            "that should be minimized."
        ),
        suggestion="Cache DOM references when elements are used multiple times",
        code_examples=[
            "// Cache DOM references\nconst form = document.getElementById('form');\n"
            "const submitButton = form.querySelector('.submit');\n\n"
            "// Use cached references\nsubmitButton.addEventListener('click', () => {\n"
            "  // Use form and submitButton\n});"
        ],
        line_suggestions={
            "querySelector": "// Cache this reference outside the function\nconst element = document.querySelector",
        },
        action_items=[
            "Cache DOM references outside of functions/loops",
            "Use event delegation for dynamic elements",
        ],
        tldr="Cache DOM references for better performance",
    ),
)

SECRET_PATTERN = re.compile(r"password|secret|token|key", re.IGNORECASE)


class PatternMatcher:
    """
    Runs the line pattern catalog over parsed diffs.

    Usage:
        matcher = PatternMatcher()
        matches = matcher.scan(parsed_diff)
    """

    def __init__(self, patterns: Iterable[CodePattern] = DEFAULT_PATTERNS):
        self.patterns = list(patterns)
        self._compiled: List[Tuple[CodePattern, Optional[Pattern[str]]]] = [
            (p, re.compile(p.pattern) if p.is_regex else None)
            for p in self.patterns
        ]

    @staticmethod
    def matches_line(pattern: CodePattern, line: str, compiled: Optional[Pattern[str]] = None) -> bool:
        if pattern.is_regex:
            regex = compiled or re.compile(pattern.pattern)
            return regex.search(line) is not None
        return pattern.pattern in line

    def scan(self, parsed_diff: ParsedDiff) -> List[PatternMatch]:
        """
        Find every (pattern, added line) hit in a file diff.

        Only added lines are scanned; removed and context lines cannot carry
        a right-side review comment that points at new code.
        """
        matches: List[PatternMatch] = []

        for pattern, compiled in self._compiled:
            for line in parsed_diff.added_lines:
                if line.new_line_number is None:
                    continue
                if self.matches_line(pattern, line.content, compiled):
                    matches.append(PatternMatch(
                        pattern=pattern,
                        filename=parsed_diff.filename,
                        line=line.new_line_number,
                        line_content=line.content
                    ))

        if matches:
            logger.debug(
                "Pattern matches found",
                filename=parsed_diff.filename,
                num_matches=len(matches)
            )

        return matches


def is_reviewable(filename: str, extensions: Iterable[str]) -> bool:
    return any(filename.endswith(ext) for ext in extensions)


def check_file(file: PRFile) -> List[ReviewComment]:
    """
    Run the file-level checks for one changed file.

    Returns:
        File comments (``subject_type="file"``) for every check that fires
    """
    settings = get_settings()
    comments: List[ReviewComment] = []
    patch = file.patch or ""

    def add(body: str, comment_type: CommentType, category: str) -> None:
        comments.append(ReviewComment(
            path=file.filename,
            body=body,
            subject_type="file",
            comment_type=comment_type,
            category=category
        ))

    if file.total_lines > settings.large_file_threshold:
        add(
            f"⚠️ This file has many changes ({file.total_lines} lines). Consider breaking it "
            "into smaller, more focused files for better maintainability.",
            CommentType.WARNING,
            "File Size"
        )

    if file.filename.endswith((".js", ".jsx")):
        if "console.log" in patch:
            add(
                "There are console.log statements in this file. Consider removing them before merging.",
                CommentType.NITPICK,
                "Logging"
            )

        if "TODO" in patch or "FIXME" in patch:
            add(
                "There are TODO/FIXME comments in this file. Consider addressing them before merging.",
                CommentType.WARNING,
                "Technical Debt"
            )

        if SECRET_PATTERN.search(patch):
            add(
                "This file might contain sensitive information. Make sure it's not exposing any secrets.",
                CommentType.SECURITY,
                "Security"
            )

    if file.filename.endswith(".json"):
        add(
            "Changes to JSON files detected. Please ensure the JSON is valid and properly formatted.",
            CommentType.BEST_PRACTICE,
            "Best Practice"
        )

    return comments
