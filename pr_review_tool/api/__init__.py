"""
API Package

- routes: review, statistics and token endpoints
"""

from pr_review_tool.api.routes import router

__all__ = ["router"]
