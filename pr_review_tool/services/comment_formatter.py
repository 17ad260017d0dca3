"""
Comment Formatter Module

Renders pattern matches into markdown review comments with GitHub
suggestion blocks, and builds the review summary.
"""

import re
from typing import Dict, List, Optional

from pr_review_tool.models import CodePattern, PatternMatch, ReviewComment
from pr_review_tool.services.suggestions import (
    MinimalDiffExtractor,
    build_replacement_lines,
    get_diff_extractor,
)

SINGLE_SUGGESTION_HINT = (
    "*You can commit this suggestion directly by clicking the commit button above, "
    "or reject it by clicking the \"Don't commit\" button.*"
)

MULTI_SUGGESTION_HINT = (
    "*You can commit any suggestion directly by clicking its commit button, add it to a "
    "batch of changes, or reject it by clicking the \"Don't commit\" button.*\n\n"
    "*To apply multiple suggestions as a single commit, use \"Add suggestion to batch\" "
    "for each suggestion you want to include, then commit the batch.*"
)

TLDR_MIN_CHARS = 500
TLDR_MIN_LINES = 10


def suggestion_block(lines: List[str]) -> str:
    body = "\n".join(lines)
    return f"```suggestion\n{body}\n```"


def issue_category(issue: str) -> str:
    """Leading part of an issue text, up to the first dash or colon."""
    category = re.split(r"[-:]", issue, maxsplit=1)[0].strip()
    return category or "General"


def splits_statement(original: List[str], keyword: str, replacement: str) -> bool:
    """True when a multi-line replacement would break a line mid-statement."""
    if "\n" not in replacement:
        return False
    return any(keyword in line and not line.lstrip().startswith(keyword) for line in original)


def indent_replacement(original: List[str], keyword: str, replacement: str) -> str:
    """Carry the matched line's indentation onto the replacement's extra lines."""
    for line in original:
        if keyword in line:
            indent = line[:len(line) - len(line.lstrip())]
            return replacement.replace("\n", "\n" + indent)
    return replacement


class CommentFormatter:
    """
    Formats review comments in the Issue / Context / Suggestion layout.

    Usage:
        formatter = CommentFormatter()
        comment = formatter.format_match(match)
    """

    def __init__(self, extractor: Optional[MinimalDiffExtractor] = None):
        self.extractor = extractor or get_diff_extractor()

    def build_suggestions(
        self,
        line_content: str,
        line_suggestions: Dict[str, str]
    ) -> List[List[str]]:
        """
        Build one suggestion block per keyword replacement.

        Keywords that do not change the line produce no block, and a block
        identical to an earlier one is dropped. Indentation is kept because
        a committed suggestion replaces the whole line. A replacement that
        spans lines is only used where the keyword starts the statement.
        """
        original = line_content.rstrip("\r\n").split("\n")
        blocks: List[List[str]] = []

        for keyword, replacement in line_suggestions.items():
            if splits_statement(original, keyword, replacement):
                continue
            replacement = indent_replacement(original, keyword, replacement)
            suggested = build_replacement_lines(original, keyword, replacement)
            lines = self.extractor.select(
                original, suggested, keyword=keyword, replacement=replacement
            )
            if lines and lines not in blocks:
                blocks.append(lines)

        return blocks

    def format_comment(
        self,
        pattern: CodePattern,
        line_content: Optional[str] = None
    ) -> str:
        """
        Render the markdown body for a pattern hit.

        Args:
            pattern: The pattern that matched
            line_content: Text of the matched line, used for suggestion blocks

        Returns:
            Markdown comment body
        """
        parts: List[str] = [f"**Issue:** {pattern.issue}"]

        if pattern.context:
            parts.append(f"**Context:** {pattern.context}")

        if pattern.suggestion:
            parts.append(f"**Suggestion:** {pattern.suggestion}")

        blocks: List[List[str]] = []
        if pattern.line_suggestions and line_content:
            blocks = self.build_suggestions(line_content, pattern.line_suggestions)

        if len(blocks) == 1:
            parts.append("**GitHub Suggestions:**")
            parts.append(suggestion_block(blocks[0]))
            parts.append(SINGLE_SUGGESTION_HINT)
        elif len(blocks) > 1:
            parts.append("**GitHub Suggestions:**")
            for index, block in enumerate(blocks, start=1):
                parts.append(f"**Option {index}:**\n{suggestion_block(block)}")
            parts.append(MULTI_SUGGESTION_HINT)

        # Examples only when nothing committable was rendered
        if pattern.code_examples and not blocks:
            show_options = len(pattern.code_examples) > 1
            if show_options:
                parts.append("**Code Examples:**")
            for index, example in enumerate(pattern.code_examples, start=1):
                label = f"**Option {index}:**\n" if show_options else ""
                parts.append(f"{label}```javascript\n{example}\n```")

        if pattern.action_items:
            items = "\n".join(f"- {item}" for item in pattern.action_items)
            parts.append(f"**Action Items:**\n{items}")

        comment = "\n\n".join(parts)

        if pattern.tldr and (
            len(comment) > TLDR_MIN_CHARS or len(comment.split("\n")) > TLDR_MIN_LINES
        ):
            comment += f"\n\n**TLDR:** {pattern.tldr}"

        return comment.strip()

    def format_match(self, match: PatternMatch) -> ReviewComment:
        return ReviewComment(
            path=match.filename,
            line=match.line,
            side="RIGHT",
            body=self.format_comment(match.pattern, match.line_content),
            category=issue_category(match.pattern.issue)
        )


def impact_area(path: str) -> Optional[str]:
    if "/css/" in path:
        return "UI/Styling"
    if "/js/" in path:
        return "JavaScript"
    if path.endswith(".html"):
        return "HTML"
    return None


def format_review_summary(comments: List[ReviewComment]) -> str:
    """
    Build the review body submitted alongside the comments.

    Args:
        comments: All inline and file comments in the review

    Returns:
        Markdown summary, or an approval message when there are no comments
    """
    if not comments:
        return "## PR Review\n\n✅ Looks good! No issues found in this review."

    categories: Dict[str, int] = {}
    impact_areas: List[str] = []

    for comment in comments:
        categories[comment.category] = categories.get(comment.category, 0) + 1
        area = impact_area(comment.path)
        if area and area not in impact_areas:
            impact_areas.append(area)

    summary = (
        f"I've reviewed the changes and found **{len(comments)}** suggestions "
        f"across {len(categories)} categories"
    )
    if impact_areas:
        summary += f", primarily affecting {', '.join(impact_areas)}"
    summary += ".\n\n### Suggestions by Category\n"

    for category in sorted(categories):
        count = categories[category]
        plural = "s" if count > 1 else ""
        summary += f"- **{category}**: {count} suggestion{plural}\n"

    summary += (
        "\n### How to Apply\n"
        "Each suggestion includes a GitHub suggestion block that can be directly "
        "committed or batched with others."
    )

    return summary
