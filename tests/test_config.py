"""
Tests for sitetrack/config.py
"""

import pytest

from sitetrack.config import ProductionConfig, _ratelimit_storage


class TestRateLimitStorage:
    def test_redis_url_becomes_limiter_storage(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/1")
        assert _ratelimit_storage() == "redis://cache:6379/1"

    @pytest.mark.parametrize("value", ["", "   "])
    def test_blank_redis_url_falls_back_to_memory(self, monkeypatch, value):
        monkeypatch.setenv("REDIS_URL", value)
        assert _ratelimit_storage() == "memory://"

    def test_unset_redis_url_falls_back_to_memory(self, monkeypatch):
        monkeypatch.delenv("REDIS_URL", raising=False)
        assert _ratelimit_storage() == "memory://"

    def test_testing_app_uses_memory_storage(self, app):
        assert app.config["RATELIMIT_STORAGE_URI"] == "memory://"
        assert app.config["RATELIMIT_ENABLED"] is False
        assert "REDIS_URL" not in app.config


class TestProductionConfig:
    def test_requires_database_url(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", None)
        with pytest.raises(RuntimeError):
            ProductionConfig()
