"""
Tests for Repository Statistics

Tests the pure aggregation, the markdown report and the collector.
"""

from datetime import datetime, timezone

import pytest

from conftest import make_pull_request, make_search_item, unreachable_client
from pr_review_tool.models import (
    GitHubPullRequest,
    GitHubUser,
    PRActivity,
    PRFile,
    PRStatus,
    RepoStats,
    UnresolvedComment,
)
from pr_review_tool.services.github_client import GitHubAPIError
from pr_review_tool.services.repo_stats import (
    RepoStatsCollector,
    StatsError,
    compute_pr_stats,
    compute_repo_stats,
    defect_area,
    first_review_time,
    format_repo_stats,
    format_time_to_merge,
    is_combine_candidate,
    is_defect_pr,
)

NOW = datetime(2024, 1, 20, 10, 0, tzinfo=timezone.utc)


def dt(day: int, hour: int = 10, minute: int = 0) -> datetime:
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


def pull_request(number, title, author, created, closed=None, merged=None, state=None):
    return GitHubPullRequest(
        number=number,
        title=title,
        user=GitHubUser(login=author),
        state=state or ("open" if closed is None else "closed"),
        created_at=created,
        closed_at=closed,
        merged_at=merged,
    )


def changed(filename, additions, deletions):
    return PRFile(filename=filename, additions=additions, deletions=deletions)


@pytest.fixture
def activities():
    return [
        PRActivity(
            pull_request=pull_request(1, "Fix login bug", "alice", dt(15), dt(16), dt(16)),
            files=[changed("src/auth/login.js", 100, 50), changed("src/auth/session.js", 200, 10)],
            first_review_at=dt(16, 8),
            unresolved_comments=[UnresolvedComment(body="Please add a test", user="bob")],
        ),
        PRActivity(
            pull_request=pull_request(2, "Add docs", "alice", dt(10)),
            files=[changed("README.md", 5, 0)],
            first_review_at=dt(12),
        ),
        PRActivity(
            pull_request=pull_request(3, "bug: session leak", "bob", dt(18), dt(18, 12)),
            files=[changed("src/auth/session.js", 3, 2)],
        ),
    ]


class TestHelpers:

    @pytest.mark.parametrize("title, expected", [
        ("Fix login", True),
        ("BUG: crash", True),
        ("Track defect 12", True),
        ("Add feature", False),
    ])
    def test_is_defect_pr(self, title, expected):
        assert is_defect_pr(title) is expected

    @pytest.mark.parametrize("title, expected", [
        ("IT for checkout story", True),
        ("Add tests for STORY-12", True),
        ("Edit story text", False),
        ("Add tests", False),
    ])
    def test_is_combine_candidate(self, title, expected):
        assert is_combine_candidate(title) is expected

    def test_defect_area(self):
        assert defect_area("src/auth/login.js") == "src/auth"
        assert defect_area("README.md") == "/"

    def test_format_time_to_merge(self):
        assert format_time_to_merge(dt(15), None) == "Not merged"
        assert format_time_to_merge(dt(15), dt(15, 10, 30)) == "~30 minutes"
        assert format_time_to_merge(dt(15), dt(16, 12)) == "~26.0 hours"

    def test_first_review_time_ignores_author(self):
        reviews = [
            {"user": {"login": "alice"}, "submitted_at": "2024-01-15T11:00:00Z"},
            {"user": {"login": "bob"}, "submitted_at": "2024-01-16T09:00:00Z"},
            {"user": {"login": "carol"}, "submitted_at": "2024-01-15T20:00:00Z"},
            {"user": {"login": "dave"}, "submitted_at": None},
        ]

        assert first_review_time(reviews, "alice") == dt(15, 20)

    def test_first_review_time_none(self):
        assert first_review_time([], "alice") is None


class TestComputeRepoStats:
    """Tests for the aggregation."""

    def compute(self, activities, **kwargs):
        return compute_repo_stats("owner", "repo", activities, total_commits=12, now=NOW, **kwargs)

    def test_contributors(self, activities):
        stats = self.compute(activities)

        alice, bob = stats.contributors
        assert (alice.name, alice.pr_count, alice.total_lines_changed) == ("alice", 2, 365)
        assert alice.avg_hours_open == 132.0
        assert [p.number for p in alice.prs] == [1, 2]
        assert alice.prs[1].hours_open == 240.0
        assert (bob.name, bob.pr_count, bob.avg_hours_open) == ("bob", 1, 2.0)

    def test_most_changed_files(self, activities):
        stats = self.compute(activities)

        assert [(f.file, f.changes, f.pr_count) for f in stats.most_changed_files] == [
            ("src/auth/session.js", 215, 2),
            ("src/auth/login.js", 150, 1),
            ("README.md", 5, 1),
        ]

    def test_top_n(self, activities):
        stats = self.compute(activities, top_n=1)

        assert len(stats.most_changed_files) == 1

    def test_defect_areas(self, activities):
        stats = self.compute(activities)

        assert len(stats.defect_areas) == 1
        area = stats.defect_areas[0]
        assert area.area == "src/auth"
        assert area.defect_count == 3
        assert area.affected_files == ["src/auth/login.js", "src/auth/session.js"]

    def test_guidelines(self, activities):
        guidelines = self.compute(activities).guidelines

        assert [(v.number, v.changes) for v in guidelines.exceeds_size_limit] == [(1, 360)]
        assert [(v.number, v.hours_open) for v in guidelines.open_too_long] == [(2, 240.0)]
        assert [(v.number, v.hours_to_first_review) for v in guidelines.slow_first_review] == [(2, 48.0)]
        assert [(v.number, v.comments) for v in guidelines.unresolved_comments] == [(1, 1)]

    def test_thresholds_are_configurable(self, activities):
        guidelines = self.compute(
            activities, size_limit=1000, open_too_long_hours=500, slow_first_review_hours=100
        ).guidelines

        assert guidelines.exceeds_size_limit == []
        assert guidelines.open_too_long == []
        assert guidelines.slow_first_review == []

    def test_unresolved_only_for_merged(self):
        activity = PRActivity(
            pull_request=pull_request(4, "Refactor", "carol", dt(15), dt(16)),
            unresolved_comments=[UnresolvedComment(body="?")],
        )

        stats = self.compute([activity])

        assert stats.guidelines.unresolved_comments == []

    def test_combine_candidates(self, activities):
        activities.append(PRActivity(
            pull_request=pull_request(4, "IT for checkout story", "carol", dt(19), dt(19, 12), dt(19, 12)),
        ))

        guidelines = self.compute(activities).guidelines

        assert [(v.number, v.title) for v in guidelines.combine_candidates] == [(4, "IT for checkout story")]

    def test_empty(self):
        stats = self.compute([])

        assert stats.contributors == []
        assert stats.total_commits == 12
        assert stats.generated_at == NOW


class TestComputePRStats:

    def test_merged_pr(self):
        pr = pull_request(1, "Fix login bug", "alice", dt(15), dt(16, 12), dt(16, 12))
        files = [changed("a.js", 10, 2), changed("b.js", 1, 1)]
        author_prs = [
            pr,
            pull_request(2, "Open work", "alice", dt(17)),
            pull_request(3, "Abandoned", "alice", dt(12), dt(13)),
        ]

        stats = compute_pr_stats(pr, files, author_prs)

        assert stats.status == "Closed and Merged"
        assert stats.time_to_merge == "~26.0 hours"
        assert stats.files == ["a.js", "b.js"]
        assert (stats.additions, stats.deletions, stats.total_changes) == (11, 3, 14)
        assert stats.author_total_prs == 3
        assert [p.status for p in stats.author_prs] == [PRStatus.MERGED, PRStatus.OPEN, PRStatus.CLOSED]
        assert (stats.author_open_prs, stats.author_merged_prs, stats.author_closed_prs) == (1, 1, 1)

    def test_open_pr(self):
        pr = pull_request(2, "Open work", "alice", dt(17))

        stats = compute_pr_stats(pr, [], [])

        assert stats.status == "open"
        assert stats.time_to_merge == "Not merged"
        assert stats.files_changed == 0


class TestFormatRepoStats:
    """Tests for the markdown report."""

    def test_report(self, activities):
        stats = compute_repo_stats("owner", "repo", activities, total_commits=12, now=NOW)

        report = format_repo_stats(stats)

        assert report.startswith("# Repository Statistics: owner/repo\n\n## Contributor Statistics\n\n")
        assert "| Contributor | PRs | Lines Changed | Avg Time Open (hours) |" in report
        assert "| alice | 2 | 365 | 132.0 |" in report
        assert "#### alice (2 PRs)" in report
        assert "| #2 | Add docs | 5 | 240.0 |" in report
        assert "| src/auth/session.js | 215 | 2 |" in report
        assert "| src/auth | 3 | 2 |" in report
        assert "### PRs Exceeding Size Limit (300 lines)" in report
        assert "| #1 | Fix login bug | 360 |" in report
        assert "| #2 | Add docs | 48.0 |" in report
        assert report.endswith("## Commit Statistics\n\n- **Total Commits:** 12\n")

    def test_empty_sections(self):
        stats = RepoStats(owner="o", repo="r", generated_at=NOW)

        report = format_repo_stats(stats, size_limit=500)

        assert "### PRs Exceeding Size Limit (500 lines)\n\nNo PRs exceed the size limit." in report
        assert "No PRs open for too long." in report
        assert "No PRs with slow first review." in report
        assert "No PRs merged with unresolved comments." in report
        assert "No IT or test PRs to combine with their story." in report

    def test_cells_are_escaped(self):
        stats = compute_repo_stats(
            "o", "r",
            [PRActivity(pull_request=pull_request(7, "Story | IT tests", "dan", dt(19)))],
            total_commits=0,
            now=NOW,
        )

        report = format_repo_stats(stats)

        assert "| #7 | Story \\| IT tests | 0 | 24.0 |" in report
        assert "### IT and Story PRs to Combine\n\n| PR | Title |" in report

    def test_table_separator(self):
        stats = RepoStats(owner="o", repo="r", generated_at=NOW)

        report = format_repo_stats(stats)

        assert "| File | Changes | PRs |\n|------|---------|-----|\n" in report


class TestRepoStatsCollector:
    """Tests for fetching statistics through the GitHub client."""

    def setup_routes(self, fake_github):
        fake_github.add("GET", "/search/issues", {"items": [
            make_search_item(
                2, "Fix crash", "alice",
                created_at="2024-01-15T10:00:00Z",
                closed_at="2024-01-15T16:00:00Z",
                merged_at="2024-01-15T16:00:00Z",
            ),
            make_search_item(1, "Add page", "bob", state="open", created_at="2024-01-10T10:00:00Z"),
        ]})
        fake_github.add("GET", "/repos/owner/repo/pulls/2/files", [
            {"filename": "src/app.js", "status": "modified", "additions": 4, "deletions": 1, "changes": 5},
        ])
        fake_github.add("GET", "/repos/owner/repo/pulls/1/files", [
            {"filename": "pages/index.html", "status": "added", "additions": 40, "deletions": 0, "changes": 40},
        ])
        fake_github.add("GET", "/repos/owner/repo/pulls/2/reviews", [
            {"user": {"login": "bob"}, "submitted_at": "2024-01-15T12:00:00Z", "state": "APPROVED"},
        ])
        fake_github.add("GET", "/repos/owner/repo/pulls/1/reviews", [])
        fake_github.add("POST", "/graphql", {"data": {"repository": {"pullRequest": {"reviewThreads": {
            "pageInfo": {"hasNextPage": False, "endCursor": None},
            "nodes": [{"isResolved": False, "comments": {"nodes": [{"body": "nit"}]}}],
        }}}}})
        fake_github.add("GET", "/repos/owner/repo/commits", [{"sha": "a"}, {"sha": "b"}, {"sha": "c"}])

    @pytest.mark.asyncio
    async def test_collect(self, fake_github):
        self.setup_routes(fake_github)
        collector = RepoStatsCollector(fake_github.client())

        stats = await collector.collect("owner", "repo", now=NOW)

        assert stats.total_commits == 3
        assert [c.name for c in stats.contributors] == ["alice", "bob"]
        assert stats.contributors[0].avg_hours_open == 6.0
        assert [d.area for d in stats.defect_areas] == ["src"]
        assert [v.number for v in stats.guidelines.open_too_long] == [1]
        assert [v.number for v in stats.guidelines.unresolved_comments] == [2]
        assert stats.guidelines.slow_first_review == []
        # Only the merged PR is checked for unresolved threads
        assert len(fake_github.posted("/graphql")) == 1

    @pytest.mark.asyncio
    async def test_collect_failure(self, fake_github):
        fake_github.add("GET", "/search/issues", {"message": "Server Error"}, status_code=500)

        with pytest.raises(StatsError) as exc_info:
            await RepoStatsCollector(fake_github.client()).collect("owner", "repo")

        assert exc_info.value.__cause__.status_code == 500

    @pytest.mark.asyncio
    async def test_collect_connection_failure(self):
        with pytest.raises(StatsError) as exc_info:
            await RepoStatsCollector(unreachable_client()).collect("owner", "repo")

        assert isinstance(exc_info.value.__cause__, GitHubAPIError)
        assert exc_info.value.__cause__.status_code is None

    @pytest.mark.asyncio
    async def test_collect_pr(self, fake_github):
        fake_github.add("GET", "/repos/owner/repo/pulls/2", make_pull_request(
            2, title="Fix crash", author="alice",
            state="closed",
            closed_at="2024-01-15T10:20:00Z",
            merged_at="2024-01-15T10:20:00Z",
        ))
        fake_github.add("GET", "/repos/owner/repo/pulls/2/files", [
            {"filename": "src/app.js", "status": "modified", "additions": 4, "deletions": 1, "changes": 5},
        ])
        fake_github.add("GET", "/search/issues", {"items": [
            make_search_item(2, "Fix crash", "alice", merged_at="2024-01-15T10:20:00Z"),
        ]})

        stats = await RepoStatsCollector(fake_github.client()).collect_pr("owner", "repo", 2)

        assert stats.status == "Closed and Merged"
        assert stats.time_to_merge == "~20 minutes"
        assert stats.total_changes == 5
        assert stats.author_merged_prs == 1
        search = [r for r in fake_github.requests if r.url.path == "/search/issues"][0]
        assert search.url.params["q"] == "repo:owner/repo author:alice is:pr"

    @pytest.mark.asyncio
    async def test_collect_pr_not_found(self, fake_github):
        with pytest.raises(StatsError):
            await RepoStatsCollector(fake_github.client()).collect_pr("owner", "repo", 99)
