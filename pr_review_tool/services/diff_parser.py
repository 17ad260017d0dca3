"""
Diff Parser Module

This module parses unified diffs into structured lines with accurate
old/new line numbers.

Design Decisions:
- Parse unified diff format (standard git diff output)
- Extract line numbers accurately for both old and new files
- Identify added, deleted, and context lines
- Track valid line numbers for GitHub review comments
- Split whole-PR diffs per file when the files API omits a patch
"""

import re
from typing import Dict, List, Optional, Set

from pr_review_tool.logging_config import get_logger
from pr_review_tool.models import DiffHunk, DiffLine, ParsedDiff, PRFile

logger = get_logger(__name__)


# Regex pattern for hunk headers: @@ -old_start,old_count +new_start,new_count @@
HUNK_HEADER_PATTERN = re.compile(
    r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@"
)

# File header in a multi-file diff: diff --git a/path b/path
FILE_HEADER_PATTERN = re.compile(r"^diff --git a/(.+?) b/(.+)$")


class DiffParserError(Exception):
    """Custom exception for diff parsing errors."""
    pass


class DiffParser:
    """
    Parser for unified diff format.

    Converts raw diff patches into structured data suitable for
    pattern checks and GitHub comment placement.

    Usage:
        parser = DiffParser()
        parsed = parser.parse_file_diff(filename, patch_content)
    """

    def parse_file_diff(self, filename: str, patch: str) -> ParsedDiff:
        """
        Parse a unified diff patch for a single file.

        Args:
            filename: Name of the file being diffed
            patch: Raw unified diff content

        Returns:
            ParsedDiff with structured diff information

        Raises:
            DiffParserError: If the diff cannot be parsed
        """
        if not patch:
            return ParsedDiff(filename=filename)

        try:
            hunks: List[DiffHunk] = []
            lines: List[DiffLine] = []
            added_lines: List[DiffLine] = []

            total_additions = 0
            total_deletions = 0

            current_hunk: Optional[DiffHunk] = None
            old_line_num = 0
            new_line_num = 0

            for raw_line in patch.split("\n"):
                hunk_match = HUNK_HEADER_PATTERN.match(raw_line)

                if hunk_match:
                    if current_hunk:
                        hunks.append(current_hunk)

                    old_start = int(hunk_match.group(1))
                    old_count = int(hunk_match.group(2)) if hunk_match.group(2) else 1
                    new_start = int(hunk_match.group(3))
                    new_count = int(hunk_match.group(4)) if hunk_match.group(4) else 1

                    current_hunk = DiffHunk(
                        old_start=old_start,
                        old_count=old_count,
                        new_start=new_start,
                        new_count=new_count,
                        content=raw_line
                    )

                    old_line_num = old_start
                    new_line_num = new_start
                    continue

                # Skip file headers and anything before the first hunk
                if current_hunk is None:
                    continue

                if raw_line.startswith("+"):
                    diff_line = DiffLine(
                        content=raw_line[1:],
                        line_type="add",
                        old_line_number=None,
                        new_line_number=new_line_num
                    )
                    lines.append(diff_line)
                    added_lines.append(diff_line)
                    total_additions += 1
                    new_line_num += 1

                elif raw_line.startswith("-"):
                    diff_line = DiffLine(
                        content=raw_line[1:],
                        line_type="delete",
                        old_line_number=old_line_num,
                        new_line_number=None
                    )
                    lines.append(diff_line)
                    total_deletions += 1
                    old_line_num += 1

                elif raw_line.startswith(" "):
                    diff_line = DiffLine(
                        content=raw_line[1:],
                        line_type="context",
                        old_line_number=old_line_num,
                        new_line_number=new_line_num
                    )
                    lines.append(diff_line)
                    old_line_num += 1
                    new_line_num += 1

                # "\ No newline at end of file" and trailing blanks carry no line
                else:
                    continue

                current_hunk.content += "\n" + raw_line

            if current_hunk:
                hunks.append(current_hunk)

            return ParsedDiff(
                filename=filename,
                hunks=hunks,
                lines=lines,
                added_lines=added_lines,
                total_additions=total_additions,
                total_deletions=total_deletions
            )

        except Exception as e:
            logger.error(
                "Failed to parse diff",
                filename=filename,
                error=str(e)
            )
            raise DiffParserError(f"Failed to parse diff for {filename}: {e}") from e

    def split_pr_diff(self, diff_text: str) -> Dict[str, str]:
        """
        Split a whole pull request diff into per-file patches.

        Args:
            diff_text: Output of the ``application/vnd.github.diff`` media type

        Returns:
            Mapping of new-side filename to its patch text
        """
        patches: Dict[str, List[str]] = {}
        current: Optional[str] = None

        for raw_line in diff_text.split("\n"):
            header = FILE_HEADER_PATTERN.match(raw_line)
            if header:
                current = header.group(2)
                patches[current] = []
                continue
            if current is not None:
                patches[current].append(raw_line)

        return {name: "\n".join(body) for name, body in patches.items()}

    def get_valid_comment_lines(self, parsed_diff: ParsedDiff) -> Set[int]:
        """
        Get the set of valid line numbers for GitHub comments.

        GitHub only allows comments on lines that appear in the diff.
        """
        return {
            line.new_line_number
            for line in parsed_diff.lines
            if line.new_line_number is not None
        }

    def parse_all_files(
        self,
        files: List[PRFile],
        fallback_patches: Optional[Dict[str, str]] = None
    ) -> List[ParsedDiff]:
        """
        Parse diffs for all files in a PR.

        Args:
            files: List of PR files with patches
            fallback_patches: Per-file patches from the full PR diff, used
                when the files API left ``patch`` empty

        Returns:
            List of parsed diffs, skipping files that fail to parse
        """
        fallback_patches = fallback_patches or {}
        parsed_diffs: List[ParsedDiff] = []

        for file in files:
            patch = file.patch or fallback_patches.get(file.filename)
            if not patch:
                continue

            try:
                parsed_diffs.append(self.parse_file_diff(file.filename, patch))
            except DiffParserError as e:
                logger.warning(
                    "Skipping file due to parse error",
                    filename=file.filename,
                    error=str(e)
                )
                continue

        logger.info(
            "Parsed all file diffs",
            total_files=len(parsed_diffs),
            total_additions=sum(d.total_additions for d in parsed_diffs),
            total_deletions=sum(d.total_deletions for d in parsed_diffs)
        )

        return parsed_diffs


# Singleton instance
_parser_instance: Optional[DiffParser] = None


def get_diff_parser() -> DiffParser:
    """Get the singleton DiffParser instance."""
    global _parser_instance
    if _parser_instance is None:
        _parser_instance = DiffParser()
    return _parser_instance
