"""
API Routes Module

HTTP endpoints for on-demand reviews, repository statistics and token checks.

Design Decisions:
- The GitHub client is a FastAPI dependency so it can be swapped in tests
- Domain errors map to HTTP errors here, never deeper in the stack
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import PlainTextResponse

from pr_review_tool.config import get_settings
from pr_review_tool.logging_config import get_logger
from pr_review_tool.models import (
    PRContext,
    PRStats,
    RepoStats,
    RepoStatsRequest,
    ReviewRequest,
    ReviewResult,
    TokenInfo,
)
from pr_review_tool.review.processor import PRReviewProcessor, ReviewProcessorError
from pr_review_tool.services.github_client import GitHubAPIError, GitHubAuthError, GitHubClient
from pr_review_tool.services.repo_stats import RepoStatsCollector, StatsError, format_repo_stats

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["api"])


def get_github_client() -> GitHubClient:
    """Dependency providing a token-authenticated GitHub client."""
    return GitHubClient()


def _upstream_error(e: Exception) -> HTTPException:
    cause = e.__cause__ if e.__cause__ is not None else e
    if isinstance(cause, GitHubAuthError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(cause))
    if isinstance(cause, GitHubAPIError) and cause.status_code == 404:
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found on GitHub")
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


@router.post("/reviews", response_model=ReviewResult)
async def create_review(
    request: ReviewRequest,
    client: GitHubClient = Depends(get_github_client)
) -> ReviewResult:
    """Review a pull request now and return the submitted review."""
    context = PRContext(owner=request.owner, repo=request.repo, pr_number=request.pr_number)
    processor = PRReviewProcessor(context, github_client=client, dry_run=request.dry_run)

    try:
        return await processor.process()
    except ReviewProcessorError as e:
        raise _upstream_error(e)


@router.post("/repo-stats", response_model=RepoStats)
async def repo_stats(
    request: RepoStatsRequest,
    client: GitHubClient = Depends(get_github_client)
) -> RepoStats:
    """Repository statistics as JSON."""
    try:
        return await RepoStatsCollector(client).collect(request.owner, request.repo)
    except StatsError as e:
        raise _upstream_error(e)


@router.get("/repo-stats/{owner}/{repo}/report", response_class=PlainTextResponse)
async def repo_stats_report(
    owner: str,
    repo: str,
    client: GitHubClient = Depends(get_github_client)
) -> str:
    """Repository statistics as a markdown report."""
    try:
        stats = await RepoStatsCollector(client).collect(owner, repo)
    except StatsError as e:
        raise _upstream_error(e)
    return format_repo_stats(stats, size_limit=get_settings().pr_size_limit)


@router.get("/pr-stats/{owner}/{repo}/{pr_number}", response_model=PRStats)
async def pr_stats(
    owner: str,
    repo: str,
    pr_number: int,
    client: GitHubClient = Depends(get_github_client)
) -> PRStats:
    try:
        return await RepoStatsCollector(client).collect_pr(owner, repo, pr_number)
    except StatsError as e:
        raise _upstream_error(e)


@router.get("/token/scopes")
async def token_scopes(
    owner: Optional[str] = None,
    repo: Optional[str] = None,
    client: GitHubClient = Depends(get_github_client)
) -> Dict[str, Any]:
    """Report the token's login, scopes and (optionally) repository access."""
    try:
        info: TokenInfo = await client.get_token_info(owner, repo)
    except GitHubAPIError as e:
        raise _upstream_error(e)

    result = info.model_dump()
    result["can_write_pull_requests"] = info.can_write_pull_requests
    return result
