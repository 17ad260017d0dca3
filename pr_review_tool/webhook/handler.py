"""
Webhook Handler Module

This module defines the FastAPI endpoint for GitHub webhooks.
Verified pull request events queue a pattern review in the background.

Design Decisions:
- Return 200 OK immediately after validation (GitHub timeout handling)
- Offload processing to background tasks
- Comprehensive logging for debugging
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, status
from pydantic import ValidationError

from pr_review_tool.logging_config import get_logger
from pr_review_tool.models import PRContext, PullRequestWebhookPayload
from pr_review_tool.review.processor import process_pr_review
from pr_review_tool.webhook.security import (
    extract_delivery_id,
    validate_webhook_event,
    verify_webhook_signature,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhook"])


@router.post("/github", status_code=status.HTTP_200_OK)
async def github_webhook(
    request: Request,
    background_tasks: BackgroundTasks
) -> Dict[str, Any]:
    """
    GitHub webhook endpoint.

    Validates the signature, parses the payload and queues the review.
    Returns before the review runs to stay inside GitHub's 10 second timeout.

    Raises:
        HTTPException: On validation or security failures
    """
    delivery_id = extract_delivery_id(request)

    logger.info(
        "Received GitHub webhook",
        delivery_id=delivery_id,
        remote_addr=request.client.host if request.client else "unknown"
    )

    raw_body = await request.body()

    await verify_webhook_signature(request, raw_body)

    event_type = request.headers.get("X-GitHub-Event")

    try:
        payload_dict = await request.json() if raw_body else {}
    except ValueError as e:
        logger.error("Failed to parse webhook payload", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON payload"
        )

    action = payload_dict.get("action")
    if not validate_webhook_event(event_type, action):
        return {
            "status": "ignored",
            "reason": f"Event type '{event_type}' with action '{action}' not processed",
            "delivery_id": delivery_id
        }

    try:
        payload = PullRequestWebhookPayload(**payload_dict)
    except ValidationError as e:
        logger.error(
            "Invalid webhook payload",
            error=str(e),
            delivery_id=delivery_id
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid payload: {e}"
        )

    if payload.pull_request.draft:
        logger.info(
            "Skipping draft PR",
            pr_number=payload.number,
            repo=payload.repository.full_name
        )
        return {
            "status": "ignored",
            "reason": "Draft PR",
            "delivery_id": delivery_id
        }

    pr = payload.pull_request
    pr_context = PRContext(
        owner=payload.repository.owner.login,
        repo=payload.repository.name,
        pr_number=payload.number,
        head_sha=pr.head.sha if pr.head else None,
        title=pr.title,
        body=pr.body,
        author=pr.user.login
    )

    logger.info(
        "Queueing PR review",
        owner=pr_context.owner,
        repo=pr_context.repo,
        pr_number=pr_context.pr_number,
        action=action,
        delivery_id=delivery_id
    )

    background_tasks.add_task(
        _process_review_with_error_handling,
        pr_context,
        delivery_id
    )

    return {
        "status": "queued",
        "message": "PR review has been queued for processing",
        "delivery_id": delivery_id,
        "pr": {
            "owner": pr_context.owner,
            "repo": pr_context.repo,
            "number": pr_context.pr_number
        }
    }


async def _process_review_with_error_handling(
    pr_context: PRContext,
    delivery_id: Optional[str]
) -> None:
    """Run a queued review and log its outcome."""
    task_id = f"{pr_context.full_repo_name}#{pr_context.pr_number}"

    try:
        result = await process_pr_review(pr_context)
        logger.info(
            "Background review completed",
            task_id=task_id,
            delivery_id=delivery_id,
            review_event=result.event.value,
            num_comments=len(result.comments)
        )
    except Exception as e:
        # Background tasks have no caller to report to
        logger.error(
            "Background review processing failed",
            task_id=task_id,
            delivery_id=delivery_id,
            error=str(e),
            error_type=type(e).__name__
        )


@router.get("/health")
async def webhook_health() -> Dict[str, str]:
    """Health check endpoint for the webhook service."""
    return {"status": "healthy", "service": "webhook"}
