"""
Services Package

This package contains all service modules for the PR Review Tool:
- suggestions: minimal-diff extraction for suggestion blocks
- diff_parser: diff parsing utilities
- patterns: line and file pattern checks
- comment_formatter: markdown rendering of review comments
- github_client: GitHub API client
- repo_stats: repository and pull request statistics
"""

from pr_review_tool.services.comment_formatter import CommentFormatter, format_review_summary
from pr_review_tool.services.diff_parser import DiffParser, DiffParserError, get_diff_parser
from pr_review_tool.services.github_client import (
    GitHubAPIError,
    GitHubAuthError,
    GitHubClient,
    GitHubRateLimitError,
)
from pr_review_tool.services.patterns import DEFAULT_PATTERNS, PatternMatcher, check_file
from pr_review_tool.services.repo_stats import (
    RepoStatsCollector,
    StatsError,
    format_repo_stats,
)
from pr_review_tool.services.suggestions import MinimalDiffExtractor, get_diff_extractor

__all__ = [
    "CommentFormatter",
    "format_review_summary",
    "DiffParser",
    "DiffParserError",
    "get_diff_parser",
    "GitHubAPIError",
    "GitHubAuthError",
    "GitHubClient",
    "GitHubRateLimitError",
    "DEFAULT_PATTERNS",
    "PatternMatcher",
    "check_file",
    "RepoStatsCollector",
    "StatsError",
    "format_repo_stats",
    "MinimalDiffExtractor",
    "get_diff_extractor",
]
