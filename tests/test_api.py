"""
Tests for API Routes

Tests the on-demand review, statistics and token endpoints.
"""

from fastapi.testclient import TestClient

from conftest import make_pull_request, make_search_item, unreachable_client
from pr_review_tool.api.routes import get_github_client
from pr_review_tool.main import app

PULL = "/repos/owner/repo/pulls/42"


def add_stats_routes(fake_github):
    fake_github.add("GET", "/search/issues", {"items": [
        make_search_item(
            5, "Fix crash", "alice",
            created_at="2024-01-15T10:00:00Z",
            closed_at="2024-01-15T14:00:00Z",
            merged_at="2024-01-15T14:00:00Z",
        ),
    ]})
    fake_github.add("GET", "/repos/owner/repo/pulls/5/files", [
        {"filename": "src/app.js", "status": "modified", "additions": 4, "deletions": 1, "changes": 5},
    ])
    fake_github.add("GET", "/repos/owner/repo/pulls/5/reviews", [])
    fake_github.add("POST", "/graphql", {"data": {"repository": {"pullRequest": {"reviewThreads": {
        "pageInfo": {"hasNextPage": False, "endCursor": None},
        "nodes": [],
    }}}}})
    fake_github.add("GET", "/repos/owner/repo/commits", [{"sha": "a"}])


class TestReviewEndpoint:
    """Tests for POST /api/reviews."""

    def test_dry_run_review(self, api_client: TestClient, fake_github, js_patch):
        fake_github.add("GET", PULL, make_pull_request(42))
        fake_github.add("GET", f"{PULL}/files", [{
            "filename": "src/app.js",
            "status": "modified",
            "additions": 4,
            "deletions": 1,
            "changes": 5,
            "patch": js_patch,
        }])

        response = api_client.post(
            "/api/reviews",
            json={"owner": "owner", "repo": "repo", "pr_number": 42, "dry_run": True}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["event"] == "COMMENT"
        assert data["posted"] is False
        assert len(data["comments"]) == 5
        assert fake_github.posted(f"{PULL}/reviews") == []

    def test_invalid_request(self, api_client: TestClient):
        response = api_client.post("/api/reviews", json={"owner": "owner", "repo": "repo", "pr_number": 0})

        assert response.status_code == 422

    def test_unknown_pull_request(self, api_client: TestClient):
        response = api_client.post(
            "/api/reviews", json={"owner": "owner", "repo": "repo", "pr_number": 404}
        )

        assert response.status_code == 404

    def test_bad_token(self, api_client: TestClient, fake_github):
        fake_github.add("GET", PULL, {"message": "Bad credentials"}, status_code=401)

        response = api_client.post(
            "/api/reviews", json={"owner": "owner", "repo": "repo", "pr_number": 42}
        )

        assert response.status_code == 401

    def test_upstream_failure(self, api_client: TestClient, fake_github):
        fake_github.add("GET", PULL, {"message": "Server Error"}, status_code=500)

        response = api_client.post(
            "/api/reviews", json={"owner": "owner", "repo": "repo", "pr_number": 42}
        )

        assert response.status_code == 502

    def test_unreachable_github(self, client: TestClient):
        app.dependency_overrides[get_github_client] = unreachable_client
        try:
            response = client.post(
                "/api/reviews", json={"owner": "owner", "repo": "repo", "pr_number": 42}
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 502


class TestStatsEndpoints:
    """Tests for the statistics endpoints."""

    def test_repo_stats(self, api_client: TestClient, fake_github):
        add_stats_routes(fake_github)

        response = api_client.post("/api/repo-stats", json={"owner": "owner", "repo": "repo"})

        assert response.status_code == 200
        data = response.json()
        assert data["total_commits"] == 1
        assert data["contributors"][0]["name"] == "alice"
        assert data["contributors"][0]["avg_hours_open"] == 4.0
        assert data["defect_areas"][0]["area"] == "src"

    def test_repo_stats_report(self, api_client: TestClient, fake_github):
        add_stats_routes(fake_github)

        response = api_client.get("/api/repo-stats/owner/repo/report")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text.startswith("# Repository Statistics: owner/repo")
        assert "| alice | 1 | 5 | 4.0 |" in response.text

    def test_repo_stats_failure(self, api_client: TestClient, fake_github):
        fake_github.add("GET", "/search/issues", {"message": "Server Error"}, status_code=500)

        response = api_client.post("/api/repo-stats", json={"owner": "owner", "repo": "repo"})

        assert response.status_code == 502

    def test_pr_stats(self, api_client: TestClient, fake_github):
        fake_github.add("GET", "/repos/owner/repo/pulls/5", make_pull_request(
            5, title="Fix crash", author="alice", state="closed",
            closed_at="2024-01-15T14:00:00Z", merged_at="2024-01-15T14:00:00Z",
        ))
        fake_github.add("GET", "/repos/owner/repo/pulls/5/files", [
            {"filename": "src/app.js", "status": "modified", "additions": 4, "deletions": 1, "changes": 5},
        ])
        fake_github.add("GET", "/search/issues", {"items": [
            make_search_item(5, "Fix crash", "alice", merged_at="2024-01-15T14:00:00Z"),
        ]})

        response = api_client.get("/api/pr-stats/owner/repo/5")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "Closed and Merged"
        assert data["time_to_merge"] == "~4.0 hours"
        assert data["author_prs"] == [{"number": 5, "title": "Fix crash", "status": "Merged"}]

    def test_pr_stats_not_found(self, api_client: TestClient):
        response = api_client.get("/api/pr-stats/owner/repo/99")

        assert response.status_code == 404


class TestTokenEndpoint:
    """Tests for GET /api/token/scopes."""

    def test_token_scopes(self, api_client: TestClient, fake_github):
        fake_github.add("GET", "/user", {"login": "me"}, headers={"X-OAuth-Scopes": "repo"})

        response = api_client.get("/api/token/scopes")

        assert response.status_code == 200
        assert response.json() == {
            "login": "me",
            "scopes": ["repo"],
            "repository": None,
            "permissions": None,
            "can_write_pull_requests": True,
        }

    def test_token_scopes_for_repository(self, api_client: TestClient, fake_github):
        fake_github.add("GET", "/user", {"login": "me"})
        fake_github.add("GET", "/repos/owner/repo", {"permissions": {"push": False, "pull": True}})

        response = api_client.get("/api/token/scopes", params={"owner": "owner", "repo": "repo"})

        data = response.json()
        assert data["repository"] == "owner/repo"
        assert data["can_write_pull_requests"] is False

    def test_invalid_token(self, api_client: TestClient, fake_github):
        fake_github.add("GET", "/user", {"message": "Bad credentials"}, status_code=401)

        response = api_client.get("/api/token/scopes")

        assert response.status_code == 401
