"""
Data Models Module

This module defines all Pydantic models used throughout the application.
Strong typing ensures data integrity and provides clear contracts between components.

Design Decisions:
- Use Pydantic models for all data transfer objects
- Strict validation to fail fast on invalid data
- Clear separation between GitHub models, review models, and statistics models
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================

class PRAction(str, Enum):
    """Valid pull request actions we handle."""
    OPENED = "opened"
    SYNCHRONIZE = "synchronize"


class ReviewState(str, Enum):
    """GitHub review events submitted by the reviewer."""
    APPROVE = "APPROVE"
    COMMENT = "COMMENT"


class CommentType(str, Enum):
    """Kinds of file-level review comments."""
    WARNING = "warning"
    NITPICK = "nitpick"
    SECURITY = "security"
    BEST_PRACTICE = "best_practice"


class PRStatus(str, Enum):
    """Derived pull request status used by statistics."""
    OPEN = "Open"
    MERGED = "Merged"
    CLOSED = "Closed"


# =============================================================================
# GitHub Models
# =============================================================================

class GitHubUser(BaseModel):
    """GitHub user information."""
    login: str
    id: int = 0
    type: str = "User"


class GitHubRepository(BaseModel):
    """GitHub repository information."""
    id: int
    name: str
    full_name: str
    private: bool = False
    owner: GitHubUser
    html_url: str = ""
    default_branch: str = "main"


class GitHubPullRequestRef(BaseModel):
    """PR head or base branch information."""
    ref: str
    sha: str


class GitHubPullRequest(BaseModel):
    """
    Pull request information.

    Covers both the full pull request object and the trimmed items returned
    by the search API, so branch refs are optional.
    """
    number: int
    title: str
    state: str = "open"
    body: Optional[str] = None
    user: GitHubUser
    html_url: str = ""
    head: Optional[GitHubPullRequestRef] = None
    base: Optional[GitHubPullRequestRef] = None
    draft: bool = False
    merged: bool = False
    review_comments: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    merged_at: Optional[datetime] = None

    @property
    def is_merged(self) -> bool:
        """Merged flag, falling back to merged_at for search results."""
        return self.merged or self.merged_at is not None

    @property
    def status(self) -> PRStatus:
        if self.is_merged:
            return PRStatus.MERGED
        if self.state == "open":
            return PRStatus.OPEN
        return PRStatus.CLOSED


class PullRequestWebhookPayload(BaseModel):
    """Pull request webhook payload (fields we use)."""
    action: str
    number: int
    pull_request: GitHubPullRequest
    repository: GitHubRepository
    sender: GitHubUser


# =============================================================================
# PR File Models
# =============================================================================

class PRFile(BaseModel):
    """
    Information about a file in a pull request.

    Attributes:
        filename: Path to the file in the repository
        status: Change status (added, removed, modified, renamed, copied)
        additions: Number of added lines
        deletions: Number of deleted lines
        changes: Total number of changes
        patch: Unified diff patch (may be None for binary files)
        sha: Blob SHA of the file
    """
    filename: str
    status: str = "modified"
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    patch: Optional[str] = None
    sha: str = ""

    @property
    def is_binary(self) -> bool:
        """Check if file appears to be binary (no patch available)."""
        return self.patch is None and self.status != "removed"

    @property
    def total_lines(self) -> int:
        """Get total number of changed lines."""
        return self.additions + self.deletions


# =============================================================================
# Diff Parsing Models
# =============================================================================

class DiffHunk(BaseModel):
    """
    Represents a single hunk in a diff.

    A hunk is a contiguous section of changes in a file.
    """
    old_start: int = Field(ge=0, description="Starting line in old file")
    old_count: int = Field(ge=0, description="Number of lines in old file")
    new_start: int = Field(ge=0, description="Starting line in new file")
    new_count: int = Field(ge=0, description="Number of lines in new file")
    content: str = Field(description="Raw hunk content including headers")


class DiffLine(BaseModel):
    """
    Represents a single line in a diff.

    Attributes:
        content: The actual line content (without +/- prefix)
        line_type: Type of change (add, delete, context)
        old_line_number: Line number in old file (None for additions)
        new_line_number: Line number in new file (None for deletions)
    """
    content: str
    line_type: str  # "add", "delete", "context"
    old_line_number: Optional[int] = None
    new_line_number: Optional[int] = None


class ParsedDiff(BaseModel):
    """Fully parsed diff for a single file."""
    filename: str
    hunks: List[DiffHunk] = []
    lines: List[DiffLine] = []
    added_lines: List[DiffLine] = []
    total_additions: int = 0
    total_deletions: int = 0


# =============================================================================
# Review Models
# =============================================================================

class CodePattern(BaseModel):
    """
    A pattern check run against added lines.

    ``line_suggestions`` maps a keyword found in the offending line to the
    text that should replace it in the suggestion block.
    """
    name: str
    pattern: str
    is_regex: bool = False
    issue: str
    context: Optional[str] = None
    suggestion: Optional[str] = None
    code_examples: List[str] = []
    line_suggestions: Dict[str, str] = {}
    action_items: List[str] = []
    tldr: Optional[str] = None


class PatternMatch(BaseModel):
    """A pattern hit on a specific added line of a file."""
    pattern: CodePattern
    filename: str
    line: int = Field(ge=1, description="Line number in the new file")
    line_content: str


class ReviewComment(BaseModel):
    """
    A review comment to be posted on GitHub.

    Line comments carry ``line``; file comments use ``subject_type="file"``.
    """
    path: str = Field(description="Relative path to the file")
    body: str = Field(min_length=1, description="Comment content in markdown")
    line: Optional[int] = Field(default=None, ge=1, description="Line number in the new file")
    side: str = Field(default="RIGHT", description="Side of the diff (LEFT or RIGHT)")
    subject_type: str = Field(default="line", description="line or file")
    comment_type: Optional[CommentType] = None
    category: str = Field(default="General", description="Grouping key for the summary")

    def to_api_payload(self) -> Dict:
        """Shape accepted by the pulls review/comment endpoints."""
        payload = {"path": self.path, "body": self.body}
        if self.subject_type == "file":
            payload["subject_type"] = "file"
        else:
            payload["line"] = self.line
            payload["side"] = self.side
        return payload


class ReviewResult(BaseModel):
    """Outcome of reviewing one pull request."""
    owner: str
    repo: str
    pr_number: int
    event: ReviewState
    summary: str
    comments: List[ReviewComment] = []
    posted: bool = False


class ReviewRequest(BaseModel):
    """Request body for triggering a review through the API."""
    owner: str = Field(min_length=1)
    repo: str = Field(min_length=1)
    pr_number: int = Field(ge=1)
    dry_run: bool = False


class TokenInfo(BaseModel):
    """What the configured GitHub token can do."""
    login: str
    scopes: List[str] = []
    repository: Optional[str] = None
    permissions: Optional[Dict[str, bool]] = None

    @property
    def can_write_pull_requests(self) -> bool:
        if self.permissions is not None:
            return bool(self.permissions.get("push") or self.permissions.get("admin"))
        return "repo" in self.scopes or "public_repo" in self.scopes


# =============================================================================
# Internal Processing Models
# =============================================================================

class PRContext(BaseModel):
    """
    Complete context for processing a pull request review.

    This is the main data structure passed through the review pipeline.
    """
    owner: str
    repo: str
    pr_number: int
    head_sha: Optional[str] = None
    title: str = ""
    body: Optional[str] = None
    author: str = ""
    files: List[PRFile] = []
    parsed_diffs: List[ParsedDiff] = []

    @property
    def full_repo_name(self) -> str:
        """Get the full repository name (owner/repo)."""
        return f"{self.owner}/{self.repo}"


# =============================================================================
# Statistics Models
# =============================================================================

class ContributorPR(BaseModel):
    number: int
    title: str
    lines_changed: int
    hours_open: float


class ContributorStats(BaseModel):
    name: str
    pr_count: int = 0
    total_lines_changed: int = 0
    avg_hours_open: float = 0.0
    prs: List[ContributorPR] = []


class FileChangeStats(BaseModel):
    file: str
    changes: int
    pr_count: int


class DefectArea(BaseModel):
    area: str
    defect_count: int
    affected_files: List[str] = []


class SizeViolation(BaseModel):
    number: int
    title: str
    changes: int


class OpenTooLongViolation(BaseModel):
    number: int
    title: str
    hours_open: float


class SlowFirstReviewViolation(BaseModel):
    number: int
    title: str
    hours_to_first_review: float


class UnresolvedComment(BaseModel):
    body: str
    user: Optional[str] = None
    created_at: Optional[datetime] = None
    path: Optional[str] = None
    line: Optional[int] = None


class UnresolvedCommentsViolation(BaseModel):
    number: int
    title: str
    comments: int
    unresolved_comments: List[UnresolvedComment] = []


class CombineCandidate(BaseModel):
    """An integration-test or test PR tied to a story, better merged with it."""
    number: int
    title: str


class PRGuidelines(BaseModel):
    exceeds_size_limit: List[SizeViolation] = []
    open_too_long: List[OpenTooLongViolation] = []
    slow_first_review: List[SlowFirstReviewViolation] = []
    unresolved_comments: List[UnresolvedCommentsViolation] = []
    combine_candidates: List[CombineCandidate] = []


class PRActivity(BaseModel):
    """
    Everything the statistics need to know about one pull request.

    Built by the fetch layer so the aggregation stays pure.
    """
    pull_request: GitHubPullRequest
    files: List[PRFile] = []
    first_review_at: Optional[datetime] = None
    unresolved_comments: List[UnresolvedComment] = []


class RepoStats(BaseModel):
    owner: str
    repo: str
    generated_at: datetime
    contributors: List[ContributorStats] = []
    most_changed_files: List[FileChangeStats] = []
    defect_areas: List[DefectArea] = []
    guidelines: PRGuidelines = Field(default_factory=PRGuidelines)
    total_commits: int = 0


class RepoStatsRequest(BaseModel):
    owner: str = Field(min_length=1)
    repo: str = Field(min_length=1)


class AuthorPR(BaseModel):
    number: int
    title: str
    status: PRStatus


class PRStats(BaseModel):
    """Statistics for a single pull request and its author."""
    pr_number: int
    title: str
    author: str
    status: str
    created_at: datetime
    merged_at: Optional[datetime] = None
    time_to_merge: str
    files_changed: int
    files: List[str] = []
    additions: int = 0
    deletions: int = 0
    total_changes: int = 0
    author_total_prs: int = 0
    author_prs: List[AuthorPR] = []
    author_open_prs: int = 0
    author_merged_prs: int = 0
    author_closed_prs: int = 0
