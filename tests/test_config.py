"""Tests for crawl configuration."""

import json

import pytest
from pydantic import ValidationError

from sitecrawl.config import CrawlConfig, settings


class TestCrawlConfig:
    """Test cases for CrawlConfig."""

    def test_defaults(self):
        """Test default configuration values."""
        config = CrawlConfig()

        assert config.max_depth == 2
        assert config.max_pages == 100
        assert config.max_concurrency == 3
        assert config.min_delay_ms == 2000
        assert config.max_delay_ms == 5000
        assert config.max_requests_per_minute == 20
        assert config.use_sitemap is True
        assert config.respect_robots_txt is True
        assert config.use_headless_browser is True
        assert config.proxy_list == []

    def test_delay_window_validated(self):
        """Test that max_delay_ms below min_delay_ms is rejected."""
        with pytest.raises(ValidationError):
            CrawlConfig(min_delay_ms=5000, max_delay_ms=1000)

    @pytest.mark.parametrize("field,value", [
        ("max_pages", 0),
        ("max_depth", -1),
        ("max_concurrency", 0),
        ("max_requests_per_minute", 0),
    ])
    def test_bounds(self, field, value):
        """Test that out-of-range budgets are rejected."""
        with pytest.raises(ValidationError):
            CrawlConfig(**{field: value})

    def test_proxy_list_from_string(self):
        """Test that a comma-separated proxy string is split."""
        config = CrawlConfig(proxy_list="a:1, b:2,")

        assert config.proxy_list == ["a:1", "b:2"]

    def test_frozen(self):
        """Test that a config cannot be changed after creation."""
        config = CrawlConfig()

        with pytest.raises(ValidationError):
            config.max_pages = 5

    def test_from_env(self, monkeypatch):
        """Test loading from SITECRAWL_* environment variables."""
        monkeypatch.setenv("SITECRAWL_MAX_PAGES", "42")
        monkeypatch.setenv("SITECRAWL_USE_SITEMAP", "false")
        monkeypatch.setenv("SITECRAWL_PROXY_LIST", "p1:8080,p2:8080")
        monkeypatch.setenv("SITECRAWL_PROXY_ROTATION", "yes")

        config = CrawlConfig.from_env()

        assert config.max_pages == 42
        assert config.use_sitemap is False
        assert config.proxy_rotation is True
        assert config.proxy_list == ["p1:8080", "p2:8080"]

    def test_proxy_list_read_at_call_time(self, monkeypatch):
        """Test that the proxy list comes from the environment when from_env runs."""
        monkeypatch.delenv("SITECRAWL_PROXY_LIST", raising=False)
        assert CrawlConfig.from_env().proxy_list == []

        monkeypatch.setenv("SITECRAWL_PROXY_LIST", "p3:3128")
        assert CrawlConfig.from_env().proxy_list == ["p3:3128"]
        assert not hasattr(settings, "PROXY_LIST")

    def test_from_file(self, tmp_path):
        """Test loading from a JSON file."""
        path = tmp_path / "crawl.json"
        path.write_text(json.dumps({"max_depth": 4, "use_headless_browser": False}))

        config = CrawlConfig.from_file(path)

        assert config.max_depth == 4
        assert config.use_headless_browser is False
        assert config.max_pages == 100
