"""Tests for the command-line interface."""

import json
from unittest.mock import patch

import pytest

from sitecrawl import cli
from sitecrawl.fetcher import RawPage
from sitecrawl.orchestrator import CrawlOrchestrator


class SinglePageBackend:
    """Backend serving one HTML page for every URL."""

    async def start(self):
        pass

    async def close(self):
        pass

    async def fetch(self, url, options):
        return RawPage(
            url=url,
            final_url=url,
            status_code=200,
            html='<html><head><title>Home</title></head><body><img src="/a.png"></body></html>',
            headers={"server": "nginx"},
        )


def fake_orchestrator(target_id, config):
    return CrawlOrchestrator(target_id, config, backend=SinglePageBackend())


BASE_ARGS = ["--log-level", "ERROR", "crawl", "example.com", "--no-sitemap", "--ignore-robots", "--http-only"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SITECRAWL_MAX_PAGES", "SITECRAWL_MAX_DEPTH", "SITECRAWL_MIN_DELAY_MS", "SITECRAWL_MAX_DELAY_MS"):
        monkeypatch.delenv(name, raising=False)


class TestCli:
    """Test cases for the crawl command."""

    def test_json_output_file(self, tmp_path):
        """Test that a JSON result is written to the output file."""
        out = tmp_path / "result.json"

        with patch.object(cli, "CrawlOrchestrator", fake_orchestrator):
            code = cli.main(BASE_ARGS + ["--output", "json", "--output-file", str(out)])

        assert code == 0
        data = json.loads(out.read_text())
        assert data["success"] is True
        assert data["job"]["status"] == "completed"
        assert data["job"]["target_id"] == "example.com"
        assert data["pages"][0]["seo"]["title"] == "Home"
        assert data["summary"]["total_images"] == 1

    def test_text_output(self, capsys):
        """Test the human readable report."""
        with patch.object(cli, "CrawlOrchestrator", fake_orchestrator):
            code = cli.main(BASE_ARGS + ["--target-id", "acme"])

        output = capsys.readouterr().out
        assert code == 0
        assert "Crawl" in output and "acme: completed" in output
        assert "Pages crawled: 1/1" in output
        assert "Web Servers: Nginx" in output

    def test_invalid_config(self, capsys):
        """Test that invalid flags are reported with exit code 2."""
        code = cli.main(BASE_ARGS + ["--max-pages", "0"])

        assert code == 2
        assert "invalid configuration" in capsys.readouterr().err

    def test_build_config_overrides(self):
        """Test that flags override the base configuration."""
        parser_args = type("Args", (), dict(
            config=None,
            max_pages=7,
            max_depth=1,
            concurrency=2,
            no_sitemap=True,
            ignore_robots=True,
            http_only=True,
        ))()

        config = cli.build_config(parser_args)

        assert config.max_pages == 7
        assert config.max_depth == 1
        assert config.max_concurrency == 2
        assert config.use_sitemap is False
        assert config.respect_robots_txt is False
        assert config.use_headless_browser is False

    def test_no_command(self, capsys):
        """Test that running without a command prints help."""
        assert cli.main(["--log-level", "ERROR"]) == 0
        assert "crawl" in capsys.readouterr().out
