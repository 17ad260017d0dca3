"""
Review Package

- processor: pull request review pipeline
"""

from pr_review_tool.review.processor import (
    PRReviewProcessor,
    ReviewProcessorError,
    process_pr_review,
)

__all__ = ["PRReviewProcessor", "ReviewProcessorError", "process_pr_review"]
