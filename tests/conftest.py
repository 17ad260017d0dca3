"""
Test Configuration

Pytest configuration and fixtures for the test suite.
"""

import asyncio
import json
import os
from typing import Any, Callable, Dict, Generator, List, Optional, Tuple, Union

# Settings are cached on first use, so the environment is fixed before any import
os.environ.setdefault("GITHUB_TOKEN", "test-token")
os.environ.setdefault("GITHUB_WEBHOOK_SECRET", "test_secret")
os.environ.setdefault("LOG_JSON_FORMAT", "false")
os.environ.setdefault("RETRY_BASE_DELAY", "0")

import httpx
import pytest
from fastapi.testclient import TestClient

from pr_review_tool.api.routes import get_github_client
from pr_review_tool.main import app
from pr_review_tool.services.github_client import GitHubClient

Body = Union[Dict[str, Any], List[Any], Callable[[httpx.Request], Any], None]


class FakeGitHub:
    """
    In-memory GitHub API served through httpx.MockTransport.

    Routes are keyed by method, path and optionally the Accept header.
    A callable body may return JSON data or a complete httpx.Response.
    Unknown routes answer 404 like the real API.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str, Optional[str]], Tuple[int, Body, Optional[str], Dict[str, str]]] = {}
        self.requests: List[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        json_body: Body = None,
        text: Optional[str] = None,
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
        accept: Optional[str] = None
    ) -> None:
        self.routes[(method, path, accept)] = (status_code, json_body, text, headers or {})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        accept = request.headers.get("accept")
        route = self.routes.get((request.method, request.url.path, accept))
        if route is None:
            route = self.routes.get((request.method, request.url.path, None))
        if route is None:
            return httpx.Response(404, json={"message": "Not Found"})

        status_code, body, text, headers = route
        if text is not None:
            return httpx.Response(status_code, text=text, headers=headers)
        if callable(body):
            body = body(request)
            if isinstance(body, httpx.Response):
                return body
        return httpx.Response(status_code, json=body, headers=headers)

    def client(self) -> GitHubClient:
        return GitHubClient(token="test-token", transport=httpx.MockTransport(self.handler))

    def posted(self, path: str) -> List[Dict[str, Any]]:
        """JSON bodies POSTed to a path, in order."""
        return [
            json.loads(r.content)
            for r in self.requests
            if r.method == "POST" and r.url.path == path
        ]


def unreachable_client() -> GitHubClient:
    """Client whose every request fails to connect."""
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    return GitHubClient(token="test-token", transport=httpx.MockTransport(refuse))


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def no_sleep(monkeypatch) -> List[float]:
    """Record asyncio sleeps instead of waiting."""
    delays: List[float] = []

    async def fake_sleep(seconds, *args, **kwargs):
        delays.append(seconds)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    return delays


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Create a test client for synchronous tests."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def api_client(fake_github: FakeGitHub) -> Generator[TestClient, None, None]:
    """Test client whose GitHub calls go to the fake API."""
    app.dependency_overrides[get_github_client] = fake_github.client
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


def make_user(login: str) -> Dict[str, Any]:
    return {"login": login, "id": sum(map(ord, login)), "type": "User"}


def make_pull_request(
    number: int,
    title: str = "Add new feature",
    author: str = "testuser",
    state: str = "open",
    created_at: str = "2024-01-15T10:00:00Z",
    closed_at: Optional[str] = None,
    merged_at: Optional[str] = None,
) -> Dict[str, Any]:
    """Pull request object as returned by GET /repos/{owner}/{repo}/pulls/{n}."""
    return {
        "number": number,
        "state": state,
        "title": title,
        "body": "This PR adds a new feature to the application.",
        "user": make_user(author),
        "html_url": f"https://github.com/owner/repo/pull/{number}",
        "head": {"ref": "feature-branch", "sha": "abc123def456"},
        "base": {"ref": "main", "sha": "xyz789abc012"},
        "merged": merged_at is not None,
        "draft": False,
        "review_comments": 0,
        "created_at": created_at,
        "updated_at": created_at,
        "closed_at": closed_at,
        "merged_at": merged_at,
    }


def make_search_item(
    number: int,
    title: str,
    author: str,
    state: str = "closed",
    created_at: str = "2024-01-15T10:00:00Z",
    closed_at: Optional[str] = None,
    merged_at: Optional[str] = None,
) -> Dict[str, Any]:
    """Pull request as returned by the issue search API."""
    return {
        "number": number,
        "title": title,
        "state": state,
        "user": make_user(author),
        "html_url": f"https://github.com/owner/repo/pull/{number}",
        "created_at": created_at,
        "updated_at": closed_at or created_at,
        "closed_at": closed_at,
        "pull_request": {"merged_at": merged_at},
    }


@pytest.fixture
def sample_pr_payload() -> dict:
    """Sample pull request webhook payload."""
    repository = {
        "id": 111,
        "name": "repo",
        "full_name": "owner/repo",
        "private": False,
        "owner": {"login": "owner", "id": 1, "type": "User"},
        "html_url": "https://github.com/owner/repo",
        "default_branch": "main"
    }
    return {
        "action": "opened",
        "number": 42,
        "pull_request": make_pull_request(42),
        "repository": repository,
        "sender": {"login": "testuser", "id": 12345, "type": "User"},
    }


@pytest.fixture
def sample_diff_patch() -> str:
    """Sample unified diff patch."""
    return '''@@ -1,5 +1,7 @@
 import os
+import sys

 def main():
-    print("Hello")
+    name = input("Enter name: ")
+    print(f"Hello, {name}!")
     return 0
'''


@pytest.fixture
def js_patch() -> str:
    """Patch for a JavaScript file that trips several line patterns."""
    return '''@@ -10,4 +10,7 @@ function setup() {
 const form = getForm();
-const ok = true;
+if (confirm('Are you sure?')) {
+  console.log("deleting");
+}
+// TODO: handle cancel
 return form;
'''
