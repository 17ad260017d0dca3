"""
PR Review Processor Module

This module orchestrates the entire PR review process.
It coordinates fetching PR data, parsing diffs, running pattern checks,
and posting the review back to GitHub.

Design Decisions:
- Single responsibility: orchestrate the review process
- Handle errors gracefully, continuing with other files on failure
- Log extensively for debugging and monitoring
- Support dry-run mode for testing
"""

from typing import Dict, List, Optional

from pr_review_tool.config import get_settings
from pr_review_tool.logging_config import get_logger
from pr_review_tool.models import (
    ParsedDiff,
    PRContext,
    PRFile,
    ReviewComment,
    ReviewResult,
    ReviewState,
)
from pr_review_tool.services.comment_formatter import CommentFormatter, format_review_summary
from pr_review_tool.services.diff_parser import get_diff_parser
from pr_review_tool.services.github_client import GitHubAPIError, GitHubClient
from pr_review_tool.services.patterns import PatternMatcher, check_file, is_reviewable

logger = get_logger(__name__)


class ReviewProcessorError(Exception):
    """Custom exception for review processing errors."""
    pass


class PRReviewProcessor:
    """
    Orchestrates the PR review process.

    This is the main coordinator that:
    1. Fetches PR details and files from GitHub
    2. Parses the diffs
    3. Runs line pattern checks and file checks
    4. Submits a COMMENT review (or APPROVE when nothing was found)

    Usage:
        processor = PRReviewProcessor(pr_context)
        result = await processor.process()
    """

    def __init__(
        self,
        pr_context: PRContext,
        github_client: Optional[GitHubClient] = None,
        matcher: Optional[PatternMatcher] = None,
        formatter: Optional[CommentFormatter] = None,
        dry_run: bool = False
    ):
        """
        Initialize the review processor.

        Args:
            pr_context: PR coordinates; details are filled in during processing
            github_client: Client to use (defaults to a token client)
            matcher: Line pattern matcher
            formatter: Comment formatter
            dry_run: Build the review without posting it
        """
        self.pr_context = pr_context
        self.settings = get_settings()
        self.github_client = github_client or GitHubClient()
        self.diff_parser = get_diff_parser()
        self.matcher = matcher or PatternMatcher()
        self.formatter = formatter or CommentFormatter()
        self.dry_run = dry_run

        self._parsed_diffs: List[ParsedDiff] = []

    async def process(self) -> ReviewResult:
        """
        Execute the complete review process.

        Returns:
            ReviewResult describing the submitted (or dry-run) review

        Raises:
            ReviewProcessorError: If GitHub data cannot be fetched or posted
        """
        ctx = self.pr_context
        logger.info(
            "Starting PR review process",
            owner=ctx.owner,
            repo=ctx.repo,
            pr_number=ctx.pr_number,
            dry_run=self.dry_run
        )

        try:
            await self._load_pull_request()

            files = await self._fetch_files()
            await self._parse_diffs(files)

            comments = self._analyze(files)
            event = ReviewState.COMMENT if comments else ReviewState.APPROVE
            summary = format_review_summary(comments)

            result = ReviewResult(
                owner=ctx.owner,
                repo=ctx.repo,
                pr_number=ctx.pr_number,
                event=event,
                summary=summary,
                comments=comments
            )

            if self.dry_run or not self.settings.enable_github_comments:
                logger.info("Posting disabled, review not submitted", num_comments=len(comments))
                return result

            await self.github_client.create_review(
                ctx.owner,
                ctx.repo,
                ctx.pr_number,
                ctx.head_sha,
                event,
                summary,
                comments
            )
            result.posted = True

            logger.info(
                "PR review completed successfully",
                owner=ctx.owner,
                repo=ctx.repo,
                pr_number=ctx.pr_number,
                review_event=event.value,
                num_comments=len(comments)
            )

            return result

        except GitHubAPIError as e:
            logger.error(
                "PR review process failed",
                owner=ctx.owner,
                repo=ctx.repo,
                pr_number=ctx.pr_number,
                error=str(e),
                error_type=type(e).__name__
            )
            raise ReviewProcessorError(f"Review process failed: {e}") from e

    async def _load_pull_request(self) -> None:
        """Fill in title, author and head SHA when the caller did not."""
        ctx = self.pr_context
        if ctx.head_sha and ctx.author:
            return

        pr = await self.github_client.get_pull_request(ctx.owner, ctx.repo, ctx.pr_number)
        ctx.title = pr.title
        ctx.body = pr.body
        ctx.author = pr.user.login
        if pr.head:
            ctx.head_sha = pr.head.sha

        logger.info("Loaded PR details", title=pr.title, author=ctx.author)

    async def _fetch_files(self) -> List[PRFile]:
        """Fetch PR files from GitHub."""
        ctx = self.pr_context
        files = await self.github_client.get_pr_files(ctx.owner, ctx.repo, ctx.pr_number)

        logger.info(
            "Fetched PR files",
            num_files=len(files),
            total_additions=sum(f.additions for f in files),
            total_deletions=sum(f.deletions for f in files)
        )

        ctx.files = files
        return files

    async def _parse_diffs(self, files: List[PRFile]) -> None:
        """Parse diffs, pulling the full PR diff for files GitHub sent without a patch."""
        ctx = self.pr_context
        fallback: Dict[str, str] = {}

        if any(f.is_binary for f in files):
            diff_text = await self.github_client.get_pr_diff(ctx.owner, ctx.repo, ctx.pr_number)
            fallback = self.diff_parser.split_pr_diff(diff_text)

        self._parsed_diffs = self.diff_parser.parse_all_files(files, fallback)
        ctx.parsed_diffs = self._parsed_diffs

    def _analyze(self, files: List[PRFile]) -> List[ReviewComment]:
        """Run line pattern checks and file checks."""
        comments: List[ReviewComment] = []
        extensions = self.settings.reviewable_extensions_list

        for parsed in self._parsed_diffs:
            if not is_reviewable(parsed.filename, extensions):
                continue
            valid_lines = self.diff_parser.get_valid_comment_lines(parsed)
            for match in self.matcher.scan(parsed):
                if match.line not in valid_lines:
                    logger.warning(
                        "Skipping match outside the diff",
                        filename=match.filename,
                        line=match.line
                    )
                    continue
                comments.append(self.formatter.format_match(match))

        if self.settings.enable_file_comments:
            for file in files:
                comments.extend(check_file(file))

        logger.info(
            "Analysis complete",
            line_comments=sum(1 for c in comments if c.subject_type == "line"),
            file_comments=sum(1 for c in comments if c.subject_type == "file")
        )
        return comments


async def process_pr_review(pr_context: PRContext, dry_run: bool = False) -> ReviewResult:
    """
    Convenience function to process a PR review.

    This is the main entry point for background task processing.
    """
    processor = PRReviewProcessor(pr_context, dry_run=dry_run)
    return await processor.process()
