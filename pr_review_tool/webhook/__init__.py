"""
Webhook Package

This package contains webhook handling components:
- handler: FastAPI route handlers
- security: Webhook signature verification
"""

from pr_review_tool.webhook.handler import router

__all__ = ["router"]
