"""Tests for application configuration loading."""

from __future__ import annotations

import os
from unittest.mock import patch

from handoff.core.config import Settings, get_settings


class TestSettingsDefaults:
    """Settings should load with sane defaults (no .env required)."""

    def test_settings_loads_without_env_file(self):
        with patch.dict(os.environ, {}, clear=True):
            s = Settings(_env_file=None)
        assert s.app_env == "development"
        assert s.storage_backend == "file"
        assert s.storage_path == "data/handoff.json"
        assert s.storage_key == "fulfillments"
        assert s.redis_url == "redis://localhost:6379/0"

    def test_default_env_is_development(self):
        s = Settings(_env_file=None)
        assert s.is_development is True
        assert s.is_production is False
        assert s.is_testing is False

    def test_logging_defaults(self):
        s = Settings(_env_file=None)
        assert s.log_level == "INFO"
        assert s.log_format == "text"

    def test_override_defaults(self):
        s = Settings(_env_file=None)
        assert s.allow_unchecked_advance is True
        assert s.rate_limit_checkpoint == 20
        assert s.rate_limit_collect_per_fulfillment == 5
        assert s.trust_proxy_headers is False


class TestSettingsFromEnv:
    def test_env_overrides(self):
        env = {
            "APP_ENV": "production",
            "STORAGE_BACKEND": "redis",
            "REDIS_URL": "redis://cache:6379/2",
            "ALLOW_UNCHECKED_ADVANCE": "false",
        }
        with patch.dict(os.environ, env, clear=True):
            s = get_settings()
        assert s.is_production is True
        assert s.storage_backend == "redis"
        assert s.redis_url == "redis://cache:6379/2"
        assert s.allow_unchecked_advance is False

    def test_unknown_env_ignored(self):
        with patch.dict(os.environ, {"SOMETHING_ELSE": "x"}, clear=True):
            s = Settings(_env_file=None)
        assert not hasattr(s, "something_else")


class TestCorsOrigins:
    def test_wildcard(self):
        assert Settings(_env_file=None).cors_origin_list == ["*"]

    def test_comma_separated(self):
        s = Settings(_env_file=None, cors_origins="https://a.example, https://b.example,,")
        assert s.cors_origin_list == ["https://a.example", "https://b.example"]
