"""
Repository Statistics Module

Aggregates pull request activity into contributor, file, defect-area and
guideline tables, and renders them as a markdown report.

Design Decisions:
- Fetching (GitHubClient) and aggregation (compute_* functions) are separate
- Aggregation is pure and takes "now" as an argument
- Only the most recent ``stats_max_prs`` pull requests are considered
"""

import posixpath
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pr_review_tool.config import get_settings
from pr_review_tool.logging_config import get_logger
from pr_review_tool.models import (
    AuthorPR,
    CombineCandidate,
    ContributorPR,
    ContributorStats,
    DefectArea,
    FileChangeStats,
    GitHubPullRequest,
    OpenTooLongViolation,
    PRActivity,
    PRFile,
    PRGuidelines,
    PRStats,
    PRStatus,
    RepoStats,
    SizeViolation,
    SlowFirstReviewViolation,
    UnresolvedCommentsViolation,
)
from pr_review_tool.services.github_client import GitHubAPIError, GitHubClient

logger = get_logger(__name__)

DEFECT_KEYWORDS = ("fix", "bug", "defect")
TEST_TITLE_PATTERN = re.compile(r"\b(?:it|tests?)\b", re.IGNORECASE)
STORY_TITLE_PATTERN = re.compile(r"\bstory\b", re.IGNORECASE)


class StatsError(Exception):
    """Custom exception for statistics collection errors."""
    pass


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600


def is_defect_pr(title: str) -> bool:
    title_lower = title.lower()
    return any(keyword in title_lower for keyword in DEFECT_KEYWORDS)


def is_combine_candidate(title: str) -> bool:
    """Title names an IT/test change together with a story."""
    return bool(TEST_TITLE_PATTERN.search(title) and STORY_TITLE_PATTERN.search(title))


def defect_area(path: str) -> str:
    """Directory of a file, or "/" for files at the repository root."""
    return posixpath.dirname(path) or "/"


def compute_repo_stats(
    owner: str,
    repo: str,
    activities: List[PRActivity],
    total_commits: int,
    now: datetime,
    size_limit: int = 300,
    open_too_long_hours: float = 72.0,
    slow_first_review_hours: float = 24.0,
    top_n: int = 10
) -> RepoStats:
    """
    Aggregate pull request activity into repository statistics.

    Args:
        owner: Repository owner
        repo: Repository name
        activities: One entry per pull request, newest first
        total_commits: Number of commits counted by the caller
        now: Reference time for PRs that are still open
        size_limit: Changed lines above which a PR is flagged
        open_too_long_hours: Age above which an open PR is flagged
        slow_first_review_hours: Delay above which a first review is flagged
        top_n: Rows kept in the file and defect tables

    Returns:
        RepoStats
    """
    contributors: Dict[str, ContributorStats] = {}
    file_changes: Dict[str, int] = {}
    file_prs: Dict[str, List[int]] = {}
    defect_counts: Dict[str, int] = {}
    defect_files: Dict[str, List[str]] = {}
    guidelines = PRGuidelines()

    for activity in activities:
        pr = activity.pull_request
        author = pr.user.login
        end = pr.closed_at or now
        hours_open = hours_between(pr.created_at, end)
        lines_changed = sum(f.total_lines for f in activity.files)

        stats = contributors.setdefault(author, ContributorStats(name=author))
        stats.pr_count += 1
        stats.total_lines_changed += lines_changed
        # Running mean over this contributor's PRs
        stats.avg_hours_open += (hours_open - stats.avg_hours_open) / stats.pr_count
        stats.prs.append(ContributorPR(
            number=pr.number,
            title=pr.title,
            lines_changed=lines_changed,
            hours_open=round(hours_open, 1)
        ))

        defect = is_defect_pr(pr.title)
        for file in activity.files:
            file_changes[file.filename] = file_changes.get(file.filename, 0) + file.total_lines
            file_prs.setdefault(file.filename, []).append(pr.number)

            if defect:
                area = defect_area(file.filename)
                defect_counts[area] = defect_counts.get(area, 0) + 1
                area_files = defect_files.setdefault(area, [])
                if file.filename not in area_files:
                    area_files.append(file.filename)

        if lines_changed > size_limit:
            guidelines.exceeds_size_limit.append(SizeViolation(
                number=pr.number, title=pr.title, changes=lines_changed
            ))

        if is_combine_candidate(pr.title):
            guidelines.combine_candidates.append(CombineCandidate(number=pr.number, title=pr.title))

        if pr.state == "open":
            age = hours_between(pr.created_at, now)
            if age > open_too_long_hours:
                guidelines.open_too_long.append(OpenTooLongViolation(
                    number=pr.number, title=pr.title, hours_open=round(age, 1)
                ))

        if activity.first_review_at is not None:
            wait = hours_between(pr.created_at, activity.first_review_at)
            if wait > slow_first_review_hours:
                guidelines.slow_first_review.append(SlowFirstReviewViolation(
                    number=pr.number, title=pr.title, hours_to_first_review=round(wait, 1)
                ))

        if pr.is_merged and activity.unresolved_comments:
            guidelines.unresolved_comments.append(UnresolvedCommentsViolation(
                number=pr.number,
                title=pr.title,
                comments=len(activity.unresolved_comments),
                unresolved_comments=activity.unresolved_comments
            ))

    for stats in contributors.values():
        stats.avg_hours_open = round(stats.avg_hours_open, 1)

    most_changed = sorted(
        (
            FileChangeStats(file=name, changes=changes, pr_count=len(file_prs[name]))
            for name, changes in file_changes.items()
        ),
        key=lambda f: -f.changes
    )[:top_n]

    areas = sorted(
        (
            DefectArea(area=area, defect_count=count, affected_files=defect_files[area])
            for area, count in defect_counts.items()
        ),
        key=lambda a: -a.defect_count
    )[:top_n]

    return RepoStats(
        owner=owner,
        repo=repo,
        generated_at=now,
        contributors=sorted(contributors.values(), key=lambda c: -c.pr_count),
        most_changed_files=most_changed,
        defect_areas=areas,
        guidelines=guidelines,
        total_commits=total_commits
    )


def format_time_to_merge(created_at: datetime, merged_at: Optional[datetime]) -> str:
    if merged_at is None:
        return "Not merged"
    hours = hours_between(created_at, merged_at)
    if hours < 1:
        return f"~{round(hours * 60)} minutes"
    return f"~{hours:.1f} hours"


def compute_pr_stats(
    pr: GitHubPullRequest,
    files: List[PRFile],
    author_prs: List[GitHubPullRequest]
) -> PRStats:
    """Statistics for one pull request plus its author's PRs in the repo."""
    additions = sum(f.additions for f in files)
    deletions = sum(f.deletions for f in files)

    author_entries = [
        AuthorPR(number=item.number, title=item.title, status=item.status)
        for item in author_prs
    ]

    return PRStats(
        pr_number=pr.number,
        title=pr.title,
        author=pr.user.login,
        status="Closed and Merged" if pr.is_merged else pr.state,
        created_at=pr.created_at,
        merged_at=pr.merged_at,
        time_to_merge=format_time_to_merge(pr.created_at, pr.merged_at),
        files_changed=len(files),
        files=[f.filename for f in files],
        additions=additions,
        deletions=deletions,
        total_changes=additions + deletions,
        author_total_prs=len(author_entries),
        author_prs=author_entries,
        author_open_prs=sum(1 for e in author_entries if e.status == PRStatus.OPEN),
        author_merged_prs=sum(1 for e in author_entries if e.status == PRStatus.MERGED),
        author_closed_prs=sum(1 for e in author_entries if e.status == PRStatus.CLOSED),
    )


def first_review_time(reviews: List[Dict], author: str) -> Optional[datetime]:
    """Earliest submitted review by someone other than the PR author."""
    times = [
        datetime.fromisoformat(r["submitted_at"].replace("Z", "+00:00"))
        for r in reviews
        if r.get("submitted_at") and (r.get("user") or {}).get("login") != author
    ]
    return min(times) if times else None


class RepoStatsCollector:
    """
    Fetches pull request activity and aggregates it.

    Usage:
        collector = RepoStatsCollector()
        stats = await collector.collect("owner", "repo")
    """

    def __init__(self, client: Optional[GitHubClient] = None):
        self.settings = get_settings()
        self.client = client or GitHubClient()

    async def _fetch_activity(self, owner: str, repo: str, pr: GitHubPullRequest) -> PRActivity:
        files = await self.client.get_all_pr_files(owner, repo, pr.number)
        reviews = await self.client.list_pr_reviews(owner, repo, pr.number)

        unresolved = []
        if pr.is_merged:
            unresolved = await self.client.get_unresolved_review_threads(owner, repo, pr.number)

        return PRActivity(
            pull_request=pr,
            files=files,
            first_review_at=first_review_time(reviews, pr.user.login),
            unresolved_comments=unresolved
        )

    async def collect(self, owner: str, repo: str, now: Optional[datetime] = None) -> RepoStats:
        """
        Collect repository statistics.

        Raises:
            StatsError: If GitHub data cannot be fetched
        """
        now = now or datetime.now(timezone.utc)
        logger.info("Collecting repository statistics", owner=owner, repo=repo)

        try:
            prs = await self.client.search_pull_requests(
                f"repo:{owner}/{repo} is:pr",
                max_results=self.settings.stats_max_prs
            )
            commits = await self.client.list_commits(
                owner, repo, max_results=self.settings.stats_max_prs
            )

            activities = []
            for pr in prs:
                activities.append(await self._fetch_activity(owner, repo, pr))

        except GitHubAPIError as e:
            logger.error(
                "Failed to collect repository statistics",
                owner=owner,
                repo=repo,
                error=str(e)
            )
            raise StatsError(f"Failed to collect statistics for {owner}/{repo}: {e}") from e

        stats = compute_repo_stats(
            owner,
            repo,
            activities,
            total_commits=len(commits),
            now=now,
            size_limit=self.settings.pr_size_limit,
            open_too_long_hours=self.settings.open_too_long_hours,
            slow_first_review_hours=self.settings.slow_first_review_hours,
            top_n=self.settings.top_n
        )

        logger.info(
            "Repository statistics collected",
            owner=owner,
            repo=repo,
            num_prs=len(activities),
            num_contributors=len(stats.contributors)
        )
        return stats

    async def collect_pr(self, owner: str, repo: str, pr_number: int) -> PRStats:
        """
        Collect statistics for a single pull request.

        Raises:
            StatsError: If GitHub data cannot be fetched
        """
        try:
            pr = await self.client.get_pull_request(owner, repo, pr_number)
            files = await self.client.get_all_pr_files(owner, repo, pr_number)
            author_prs = await self.client.search_pull_requests(
                f"repo:{owner}/{repo} author:{pr.user.login} is:pr",
                max_results=self.settings.stats_max_prs
            )
        except GitHubAPIError as e:
            logger.error(
                "Failed to collect PR statistics",
                owner=owner,
                repo=repo,
                pr_number=pr_number,
                error=str(e)
            )
            raise StatsError(f"Failed to collect statistics for PR #{pr_number}: {e}") from e

        return compute_pr_stats(pr, files, author_prs)


def _cell(value: object) -> str:
    return str(value).replace("|", "\\|").replace("\n", " ")


def _table(headers: List[str], rows: List[List[object]]) -> str:
    lines = [
        "| " + " | ".join(headers) + " |",
        "|" + "|".join("-" * (len(h) + 2) for h in headers) + "|",
    ]
    for row in rows:
        lines.append("| " + " | ".join(_cell(cell) for cell in row) + " |")
    return "\n".join(lines) + "\n"


def format_repo_stats(stats: RepoStats, size_limit: int = 300) -> str:
    """Render repository statistics as a markdown report."""
    out = f"# Repository Statistics: {stats.owner}/{stats.repo}\n\n"

    out += "## Contributor Statistics\n\n"
    out += _table(
        ["Contributor", "PRs", "Lines Changed", "Avg Time Open (hours)"],
        [[c.name, c.pr_count, c.total_lines_changed, c.avg_hours_open] for c in stats.contributors]
    )

    out += "\n### PR Details by Contributor\n\n"
    for c in stats.contributors:
        out += f"#### {c.name} ({c.pr_count} PRs)\n\n"
        out += _table(
            ["PR", "Title", "Lines Changed", "Time Open (hours)"],
            [[f"#{p.number}", p.title, p.lines_changed, p.hours_open] for p in c.prs]
        )
        out += "\n"

    out += "## Most Changed Files\n\n"
    out += _table(
        ["File", "Changes", "PRs"],
        [[f.file, f.changes, f.pr_count] for f in stats.most_changed_files]
    )

    out += "\n## Areas with Most Defects\n\n"
    out += _table(
        ["Area", "Defect Count", "Affected Files"],
        [[a.area, a.defect_count, len(a.affected_files)] for a in stats.defect_areas]
    )

    g = stats.guidelines
    out += "\n## PR Guidelines Violations\n\n"

    sections = [
        (
            f"PRs Exceeding Size Limit ({size_limit} lines)",
            "No PRs exceed the size limit.",
            ["PR", "Title", "Changes"],
            [[f"#{v.number}", v.title, v.changes] for v in g.exceeds_size_limit],
        ),
        (
            "PRs Open Too Long",
            "No PRs open for too long.",
            ["PR", "Title", "Hours Open"],
            [[f"#{v.number}", v.title, v.hours_open] for v in g.open_too_long],
        ),
        (
            "PRs with Slow First Review",
            "No PRs with slow first review.",
            ["PR", "Title", "Hours to First Review"],
            [[f"#{v.number}", v.title, v.hours_to_first_review] for v in g.slow_first_review],
        ),
        (
            "PRs Merged with Unresolved Comments",
            "No PRs merged with unresolved comments.",
            ["PR", "Title", "Comment Count"],
            [[f"#{v.number}", v.title, v.comments] for v in g.unresolved_comments],
        ),
        (
            "IT and Story PRs to Combine",
            "No IT or test PRs to combine with their story.",
            ["PR", "Title"],
            [[f"#{v.number}", v.title] for v in g.combine_candidates],
        ),
    ]

    for title, empty_message, headers, rows in sections:
        out += f"### {title}\n\n"
        out += (_table(headers, rows) if rows else empty_message + "\n") + "\n"

    out += "## Commit Statistics\n\n"
    out += f"- **Total Commits:** {stats.total_commits}\n"

    return out
