"""
GitHub API Client Module

This module provides a client for the GitHub REST and GraphQL APIs.
It handles authentication, rate limiting, retries, and all PR-related operations.

Design Decisions:
- Use httpx for async HTTP requests
- Authenticate with a personal access token
- Implement exponential backoff for rate limit handling
- Support pagination for large result sets
- Accept an injected transport so tests never touch the network
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

import httpx
from aiolimiter import AsyncLimiter
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pr_review_tool.config import get_settings
from pr_review_tool.logging_config import get_logger
from pr_review_tool.models import (
    GitHubPullRequest,
    PRFile,
    ReviewComment,
    ReviewState,
    TokenInfo,
    UnresolvedComment,
)

logger = get_logger(__name__)


REVIEW_THREADS_QUERY = """
query($owner: String!, $repo: String!, $pr: Int!, $cursor: String) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $pr) {
      reviewThreads(first: 100, after: $cursor) {
        pageInfo { hasNextPage endCursor }
        nodes {
          isResolved
          comments(first: 1) {
            nodes {
              author { login }
              body
              createdAt
              path
              line
            }
          }
        }
      }
    }
  }
}
"""


class GitHubAPIError(Exception):
    """Custom exception for GitHub API errors."""
    def __init__(self, message: str, status_code: Optional[int] = None, response_body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class GitHubRateLimitError(GitHubAPIError):
    """Exception raised when GitHub rate limit is exceeded."""
    pass


class GitHubAuthError(GitHubAPIError):
    """Exception raised when the token is missing, invalid or lacks access."""
    pass


class GitHubClient:
    """
    Async GitHub API client with authentication and rate limiting.

    This client handles all interactions with the GitHub API including:
    - Fetching pull requests, files and diffs
    - Creating reviews and comments
    - Searching pull requests and listing commits for statistics
    - Handling rate limits and retries

    Usage:
        client = GitHubClient()
        files = await client.get_pr_files("owner", "repo", 42)
    """

    def __init__(
        self,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the GitHub client.

        Args:
            token: Personal access token; defaults to GITHUB_TOKEN
            transport: Optional httpx transport (used by tests)
        """
        self.settings = get_settings()
        self._token = token
        self._transport = transport
        self.api_base = self.settings.github_api_base

        self._rate_limiter = AsyncLimiter(
            max_rate=self.settings.github_rate_limit,
            time_period=3600
        )

    @property
    def token(self) -> str:
        if self._token is None:
            try:
                self._token = self.settings.get_token()
            except ValueError as e:
                raise GitHubAuthError(str(e)) from e
        return self._token

    def _get_headers(self, accept: str = "application/vnd.github+json") -> Dict[str, str]:
        """Get authenticated headers for API requests."""
        return {
            "Authorization": f"token {self.token}",
            "Accept": accept,
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "pr-review-tool",
        }

    async def _handle_rate_limit(self, response: httpx.Response) -> None:
        """
        Handle rate limit headers from GitHub response.

        If we're close to the rate limit, log a warning.
        If we've exceeded the limit, wait for reset.
        """
        remaining = response.headers.get("x-ratelimit-remaining")
        reset_time = response.headers.get("x-ratelimit-reset")

        if remaining is None:
            return

        remaining_int = int(remaining)
        if remaining_int < 100:
            logger.warning(
                "GitHub API rate limit running low",
                remaining=remaining_int,
                reset_at=reset_time
            )

        if remaining_int == 0 and reset_time and response.status_code in (403, 429):
            sleep_time = max(0, int(reset_time) - int(time.time())) + 5
            logger.warning(
                "Rate limit exceeded, waiting for reset",
                sleep_seconds=sleep_time
            )
            await asyncio.sleep(sleep_time)
            raise GitHubRateLimitError("Rate limit exceeded", status_code=response.status_code)

    async def _request(
        self,
        method: str,
        endpoint: str,
        accept: str = "application/vnd.github+json",
        **kwargs
    ) -> httpx.Response:
        """
        Make an authenticated request to the GitHub API, with retries.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint (without base URL)
            accept: Media type requested from GitHub
            **kwargs: Additional arguments to pass to httpx

        Returns:
            httpx.Response object

        Raises:
            GitHubAPIError: If the request fails
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.max_retries),
            wait=wait_exponential(
                multiplier=self.settings.retry_base_delay,
                max=self.settings.retry_max_delay
            ),
            retry=retry_if_exception_type((httpx.TransportError, GitHubRateLimitError)),
            reraise=True
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await self._send(method, endpoint, accept, **kwargs)
        except httpx.TransportError as e:
            logger.error(
                "GitHub API unreachable",
                endpoint=endpoint,
                error=str(e),
                error_type=type(e).__name__
            )
            raise GitHubAPIError(f"GitHub API request failed: {e}") from e

    async def _send(
        self,
        method: str,
        endpoint: str,
        accept: str,
        **kwargs
    ) -> httpx.Response:
        async with self._rate_limiter:
            headers = self._get_headers(accept)
            url = f"{self.api_base}{endpoint}"

            async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
                response = await client.request(
                    method,
                    url,
                    headers=headers,
                    **kwargs
                )

            await self._handle_rate_limit(response)

            if response.status_code == 401:
                raise GitHubAuthError(
                    "Authentication failed, check GITHUB_TOKEN",
                    status_code=401,
                    response_body=response.text
                )

            if response.status_code >= 400:
                error_body = response.text
                logger.error(
                    "GitHub API error",
                    status_code=response.status_code,
                    endpoint=endpoint,
                    error=error_body[:500]
                )
                raise GitHubAPIError(
                    f"GitHub API error: {response.status_code}",
                    status_code=response.status_code,
                    response_body=error_body
                )

            return response

    async def _paginate(
        self,
        endpoint: str,
        max_items: int,
        params: Optional[Dict[str, Any]] = None,
        items_key: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Collect up to ``max_items`` entries from a paginated endpoint."""
        per_page = 100
        page = 1
        items: List[Dict[str, Any]] = []

        while len(items) < max_items:
            query = dict(params or {})
            query.update({"page": page, "per_page": per_page})
            response = await self._request("GET", endpoint, params=query)

            data = response.json()
            batch = data.get(items_key, []) if items_key else data
            if not batch:
                break

            items.extend(batch)

            if len(batch) < per_page:
                break
            page += 1

        return items[:max_items]

    # =========================================================================
    # Pull requests
    # =========================================================================

    async def get_pull_request(self, owner: str, repo: str, pr_number: int) -> GitHubPullRequest:
        """Fetch a single pull request."""
        response = await self._request("GET", f"/repos/{owner}/{repo}/pulls/{pr_number}")
        return GitHubPullRequest(**response.json())

    async def get_pr_files(
        self,
        owner: str,
        repo: str,
        pr_number: int
    ) -> List[PRFile]:
        """
        Fetch all files changed in a pull request.

        Handles pagination for PRs with many files.
        Filters out files that shouldn't be processed.
        """
        logger.info(
            "Fetching PR files",
            owner=owner,
            repo=repo,
            pr_number=pr_number
        )

        files_data = await self._paginate(
            f"/repos/{owner}/{repo}/pulls/{pr_number}/files",
            max_items=self.settings.max_pr_files
        )

        all_files: List[PRFile] = []
        for file_data in files_data:
            pr_file = PRFile(
                filename=file_data["filename"],
                status=file_data.get("status", "modified"),
                additions=file_data.get("additions", 0),
                deletions=file_data.get("deletions", 0),
                changes=file_data.get("changes", 0),
                patch=file_data.get("patch"),
                sha=file_data.get("sha", "")
            )

            if self._should_skip_file(pr_file):
                logger.debug("Skipping file", filename=pr_file.filename)
                continue

            all_files.append(pr_file)

        logger.info(
            "Fetched PR files",
            total_files=len(all_files),
            owner=owner,
            repo=repo,
            pr_number=pr_number
        )

        return all_files

    async def get_all_pr_files(self, owner: str, repo: str, pr_number: int) -> List[PRFile]:
        """Fetch changed files without review filtering (used for statistics)."""
        files_data = await self._paginate(
            f"/repos/{owner}/{repo}/pulls/{pr_number}/files",
            max_items=3000
        )
        return [
            PRFile(
                filename=f["filename"],
                status=f.get("status", "modified"),
                additions=f.get("additions", 0),
                deletions=f.get("deletions", 0),
                changes=f.get("changes", 0),
            )
            for f in files_data
        ]

    def _should_skip_file(self, file: PRFile) -> bool:
        """Determine if a file should be skipped from review."""
        if file.status == "removed":
            return True

        for skip_path in self.settings.skip_paths_list:
            if skip_path in file.filename:
                return True

        return False

    async def get_pr_diff(self, owner: str, repo: str, pr_number: int) -> str:
        """Fetch the whole pull request as a unified diff."""
        response = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/pulls/{pr_number}",
            accept="application/vnd.github.diff"
        )
        return response.text

    # =========================================================================
    # Reviews and comments
    # =========================================================================

    async def create_review(
        self,
        owner: str,
        repo: str,
        pr_number: int,
        commit_sha: Optional[str],
        event: ReviewState,
        body: str,
        comments: List[ReviewComment]
    ) -> bool:
        """
        Submit a review with inline and file comments in one request.

        Falls back to posting comments one by one (followed by a review
        without comments) when the bulk request is rejected.

        Returns:
            True if the review was posted in one request
        """
        logger.info(
            "Creating PR review",
            owner=owner,
            repo=repo,
            pr_number=pr_number,
            review_event=event.value,
            num_comments=len(comments)
        )

        endpoint = f"/repos/{owner}/{repo}/pulls/{pr_number}/reviews"
        payload: Dict[str, Any] = {
            "body": body,
            "event": event.value,
            "comments": [c.to_api_payload() for c in comments],
        }
        if commit_sha:
            payload["commit_id"] = commit_sha

        try:
            await self._request("POST", endpoint, json=payload)

            logger.info(
                "Review posted successfully",
                owner=owner,
                repo=repo,
                pr_number=pr_number,
                review_event=event.value,
                num_comments=len(comments)
            )
            return True

        except GitHubAPIError as e:
            logger.error(
                "Failed to post review",
                error=str(e),
                owner=owner,
                repo=repo,
                pr_number=pr_number
            )

            if not comments:
                raise

            await self._post_comments_individually(
                owner, repo, pr_number, commit_sha, comments
            )
            payload["comments"] = []
            await self._request("POST", endpoint, json=payload)
            return False

    async def _post_comments_individually(
        self,
        owner: str,
        repo: str,
        pr_number: int,
        commit_sha: Optional[str],
        comments: List[ReviewComment]
    ) -> int:
        """
        Post comments individually as a fallback.

        This handles cases where the bulk review API fails
        due to invalid line numbers or other issues.
        """
        logger.info(
            "Attempting to post comments individually",
            num_comments=len(comments)
        )

        success_count = 0
        endpoint = f"/repos/{owner}/{repo}/pulls/{pr_number}/comments"

        for comment in comments:
            payload = comment.to_api_payload()
            if commit_sha:
                payload["commit_id"] = commit_sha

            try:
                await self._request("POST", endpoint, json=payload)
                success_count += 1
            except GitHubAPIError as e:
                logger.warning(
                    "Failed to post individual comment",
                    path=comment.path,
                    line=comment.line,
                    error=str(e)
                )

        logger.info(
            "Individual comment posting complete",
            success=success_count,
            failed=len(comments) - success_count
        )
        return success_count

    async def add_issue_comment(self, owner: str, repo: str, issue_number: int, body: str) -> Dict[str, Any]:
        """Add a conversation comment to a pull request or issue."""
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            json={"body": body}
        )
        data = response.json()
        logger.info("Comment added", issue_number=issue_number, url=data.get("html_url"))
        return data

    # =========================================================================
    # Statistics sources
    # =========================================================================

    async def search_pull_requests(self, query: str, max_results: int = 100) -> List[GitHubPullRequest]:
        """
        Search pull requests, most recently created first.

        Search results carry merge state under ``pull_request.merged_at``.
        """
        items = await self._paginate(
            "/search/issues",
            max_items=max_results,
            params={"q": query, "sort": "created", "order": "desc"},
            items_key="items"
        )

        pull_requests = []
        for item in items:
            pr_info = item.get("pull_request") or {}
            pull_requests.append(GitHubPullRequest(
                number=item["number"],
                title=item.get("title", ""),
                state=item.get("state", "open"),
                body=item.get("body"),
                user=item["user"],
                html_url=item.get("html_url", ""),
                draft=item.get("draft", False),
                created_at=item["created_at"],
                updated_at=item.get("updated_at"),
                closed_at=item.get("closed_at"),
                merged_at=pr_info.get("merged_at"),
            ))
        return pull_requests

    async def list_commits(self, owner: str, repo: str, max_results: int = 100) -> List[Dict[str, Any]]:
        return await self._paginate(f"/repos/{owner}/{repo}/commits", max_items=max_results)

    async def list_pr_reviews(self, owner: str, repo: str, pr_number: int) -> List[Dict[str, Any]]:
        return await self._paginate(
            f"/repos/{owner}/{repo}/pulls/{pr_number}/reviews",
            max_items=1000
        )

    async def get_unresolved_review_threads(
        self,
        owner: str,
        repo: str,
        pr_number: int
    ) -> List[UnresolvedComment]:
        """
        List unresolved review threads through the GraphQL API.

        The REST API has no resolution state for review comments, so each
        unresolved thread is reported by its first comment.
        """
        unresolved: List[UnresolvedComment] = []
        cursor: Optional[str] = None

        while True:
            variables: Dict[str, Any] = {"owner": owner, "repo": repo, "pr": pr_number}
            if cursor:
                variables["cursor"] = cursor

            response = await self._request(
                "POST",
                "/graphql",
                json={"query": REVIEW_THREADS_QUERY, "variables": variables}
            )
            result = response.json()
            if result.get("errors"):
                message = result["errors"][0].get("message", "unknown error")
                raise GitHubAPIError(f"GraphQL error fetching review threads: {message}")

            pr_data = (result.get("data") or {}).get("repository", {}).get("pullRequest") or {}
            threads = pr_data.get("reviewThreads") or {}

            for thread in threads.get("nodes", []):
                if thread.get("isResolved"):
                    continue
                first = (thread.get("comments", {}).get("nodes") or [{}])[0]
                unresolved.append(UnresolvedComment(
                    body=first.get("body", ""),
                    user=(first.get("author") or {}).get("login"),
                    created_at=first.get("createdAt"),
                    path=first.get("path"),
                    line=first.get("line"),
                ))

            page_info = threads.get("pageInfo", {})
            if page_info.get("hasNextPage") and page_info.get("endCursor"):
                cursor = page_info["endCursor"]
            else:
                break

        return unresolved

    # =========================================================================
    # Token checks
    # =========================================================================

    async def get_token_info(self, owner: Optional[str] = None, repo: Optional[str] = None) -> TokenInfo:
        """
        Describe the configured token: login, OAuth scopes and repo access.

        Fine-grained tokens report no ``X-OAuth-Scopes`` header; their scope
        list is empty.
        """
        response = await self._request("GET", "/user")
        scopes_header = response.headers.get("x-oauth-scopes", "")
        info = TokenInfo(
            login=response.json().get("login", ""),
            scopes=[s.strip() for s in scopes_header.split(",") if s.strip()],
        )

        if owner and repo:
            try:
                repo_response = await self._request("GET", f"/repos/{owner}/{repo}")
                info.repository = f"{owner}/{repo}"
                info.permissions = repo_response.json().get("permissions", {})
            except GitHubAPIError as e:
                logger.warning(
                    "Cannot access repository with token",
                    owner=owner,
                    repo=repo,
                    status_code=e.status_code
                )
                info.repository = f"{owner}/{repo}"
                info.permissions = {}

        return info
