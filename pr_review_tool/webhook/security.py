"""
Webhook Security Module

This module handles secure verification of GitHub webhook payloads.
It implements HMAC-SHA256 signature verification to ensure requests
are genuinely from GitHub.

Design Decisions:
- Use constant-time comparison to prevent timing attacks
- Verify signature before any payload processing
- Support both SHA-1 and SHA-256 signatures (SHA-256 preferred)
- Refuse every delivery while no webhook secret is configured
"""

import hashlib
import hmac
from typing import Optional

from fastapi import HTTPException, Request, status

from pr_review_tool.config import get_settings
from pr_review_tool.logging_config import get_logger
from pr_review_tool.models import PRAction

logger = get_logger(__name__)


def compute_signature(secret: str, body: bytes, algorithm: str = "sha256") -> str:
    """Hex HMAC digest GitHub sends for a payload."""
    hash_func = hashlib.sha256 if algorithm == "sha256" else hashlib.sha1
    return hmac.new(secret.encode(), body, hash_func).hexdigest()


async def verify_webhook_signature(
    request: Request,
    raw_body: bytes
) -> bool:
    """
    Verify the GitHub webhook signature.

    GitHub sends a signature in the X-Hub-Signature-256 header.
    We must verify this matches the HMAC-SHA256 of the request body
    using our webhook secret.

    Raises:
        HTTPException: If the secret is unset or the signature is missing or invalid
    """
    settings = get_settings()
    remote_addr = request.client.host if request.client else "unknown"

    if not settings.github_webhook_secret:
        logger.error("Webhook received but GITHUB_WEBHOOK_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook secret not configured"
        )

    # Prefer SHA-256, fall back to SHA-1
    signature_header = request.headers.get("X-Hub-Signature-256")
    algorithm = "sha256"

    if not signature_header:
        signature_header = request.headers.get("X-Hub-Signature")
        algorithm = "sha1"

    if not signature_header:
        logger.warning("Missing webhook signature header", remote_addr=remote_addr)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing webhook signature"
        )

    try:
        prefix, signature = signature_header.split("=", 1)
        if prefix != algorithm:
            raise ValueError(f"Unexpected algorithm prefix: {prefix}")
    except ValueError as e:
        logger.warning(
            "Invalid signature format",
            signature_header=signature_header[:50],
            error=str(e)
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid signature format"
        )

    expected_signature = compute_signature(settings.github_webhook_secret, raw_body, algorithm)

    if not hmac.compare_digest(signature, expected_signature):
        logger.warning(
            "Webhook signature mismatch",
            remote_addr=remote_addr,
            algorithm=algorithm
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature"
        )

    logger.debug("Webhook signature verified successfully", algorithm=algorithm)
    return True


def validate_webhook_event(
    event_type: Optional[str],
    action: Optional[str]
) -> bool:
    """
    Validate that we should process this webhook event.

    We only process ``pull_request`` events with the ``opened`` or
    ``synchronize`` actions.

    Raises:
        HTTPException: If the event type header is missing
    """
    valid_actions = {a.value for a in PRAction}

    if not event_type:
        logger.debug("Missing event type header")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing X-GitHub-Event header"
        )

    if event_type != "pull_request":
        logger.debug("Ignoring non-PR event", event_type=event_type)
        return False

    if action and action not in valid_actions:
        logger.debug("Ignoring PR action", action=action)
        return False

    return True


def extract_delivery_id(request: Request) -> Optional[str]:
    """Extract the webhook delivery ID from headers."""
    return request.headers.get("X-GitHub-Delivery")
