"""
GitHub Pull Request Review Tool

A backend service that reviews pull requests with pattern checks, posts
compact one-click suggestion blocks, and aggregates repository statistics.
"""

__version__ = "1.0.0"
__author__ = "PR Review Tool Team"
