"""
Tests for Configuration

Tests settings parsing and validation.
"""

import pytest
from pydantic import ValidationError

from pr_review_tool.config import Settings, get_settings


class TestSettings:
    """Test suite for Settings."""

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.suggestion_max_lines == 3
        assert settings.suggestion_context_lines == 1
        assert settings.reviewable_extensions_list == [".js", ".jsx"]
        assert "node_modules/" in settings.skip_paths_list

    def test_lists_are_trimmed(self):
        settings = Settings(_env_file=None, reviewable_extensions=" .js, .ts ,,", skip_paths="")

        assert settings.reviewable_extensions_list == [".js", ".ts"]
        assert settings.skip_paths_list == []

    def test_log_level_normalized(self):
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="verbose")

    @pytest.mark.parametrize("field, value", [
        ("suggestion_max_lines", 0),
        ("suggestion_context_lines", -1),
        ("max_retries", 0),
    ])
    def test_bounds(self, field, value):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: value})

    def test_api_base_trailing_slash(self):
        settings = Settings(_env_file=None, github_api_base="https://ghe.example.com/api/v3/")

        assert settings.github_api_base == "https://ghe.example.com/api/v3"

    def test_get_token(self):
        assert Settings(_env_file=None, github_token=" abc \n").get_token() == "abc"

    def test_missing_token(self):
        with pytest.raises(ValueError, match="GITHUB_TOKEN"):
            Settings(_env_file=None, github_token=None).get_token()

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("SUGGESTION_MAX_LINES", "5")

        assert Settings(_env_file=None).suggestion_max_lines == 5

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()
