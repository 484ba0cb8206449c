"""Tests for robots.txt parsing and matching."""

import httpx
import pytest

pytest_plugins = ('pytest_asyncio',)

from sitecrawl.robots import fetch_robots_txt, is_allowed, parse_robots_txt


ROBOTS_TXT = """
# Example robots.txt
User-agent: *
Disallow: /admin
Disallow: /search?
Allow: /admin/public
Crawl-delay: 2.5

User-agent: SiteCrawlBot
User-agent: OtherBot
Disallow: /private   # trailing comment
Allow: /private/open

Sitemap: https://example.com/sitemap-main.xml
Sitemap: https://example.com/sitemap-news.xml
"""


class TestParseRobotsTxt:
    """Test cases for parse_robots_txt."""

    def test_groups(self):
        """Test that consecutive User-agent lines share a group."""
        rules = parse_robots_txt(ROBOTS_TXT)

        assert len(rules.groups) == 2
        assert rules.groups[1].user_agents == ["sitecrawlbot", "otherbot"]
        assert ("disallow", "/private") in rules.groups[1].rules

    def test_sitemaps_are_global(self):
        """Test that Sitemap lines are collected regardless of group."""
        rules = parse_robots_txt(ROBOTS_TXT)

        assert rules.sitemaps == [
            "https://example.com/sitemap-main.xml",
            "https://example.com/sitemap-news.xml",
        ]

    def test_crawl_delay(self):
        """Test that Crawl-delay seconds are converted to milliseconds."""
        rules = parse_robots_txt(ROBOTS_TXT)

        assert rules.crawl_delay_ms("*") == 2500
        assert rules.crawl_delay_ms("SiteCrawlBot") is None

    def test_empty_disallow(self):
        """Test that an empty Disallow allows everything."""
        rules = parse_robots_txt("User-agent: *\nDisallow:\n")

        assert is_allowed("https://example.com/anything", rules)

    def test_empty_content(self):
        """Test parsing an empty file."""
        rules = parse_robots_txt("")

        assert rules.groups == []
        assert is_allowed("https://example.com/", rules)


class TestIsAllowed:
    """Test cases for is_allowed."""

    @pytest.fixture
    def rules(self):
        return parse_robots_txt(ROBOTS_TXT)

    def test_no_rules_allows_all(self):
        """Test that unavailable robots.txt means allow."""
        assert is_allowed("https://example.com/admin", None)

    def test_wildcard_group(self, rules):
        """Test prefix matching in the * group."""
        assert not is_allowed("https://example.com/admin/users", rules)
        assert is_allowed("https://example.com/about", rules)

    def test_longest_match_wins(self, rules):
        """Test that a longer Allow overrides a shorter Disallow."""
        assert is_allowed("https://example.com/admin/public/page", rules)

    def test_query_is_matched(self, rules):
        """Test that the query string takes part in matching."""
        assert not is_allowed("https://example.com/search?q=seo", rules)
        assert is_allowed("https://example.com/search", rules)

    def test_specific_group(self, rules):
        """Test that a named agent uses its own group instead of *."""
        assert is_allowed("https://example.com/admin", rules, "SiteCrawlBot")
        assert not is_allowed("https://example.com/private/x", rules, "SiteCrawlBot")
        assert is_allowed("https://example.com/private/open/x", rules, "SiteCrawlBot")

    def test_full_user_agent_string(self, rules):
        """Test that the product token is found inside a full user agent."""
        assert not is_allowed(
            "https://example.com/private", rules, "Mozilla/5.0 (compatible; SiteCrawlBot/1.0)"
        )

    def test_tie_goes_to_allow(self):
        """Test that equal-length Allow and Disallow resolve to allow."""
        rules = parse_robots_txt("User-agent: *\nDisallow: /page\nAllow: /page\n")

        assert is_allowed("https://example.com/page", rules)


class TestFetchRobotsTxt:
    """Test cases for fetch_robots_txt."""

    @pytest.mark.asyncio
    async def test_fetch_success(self):
        """Test loading robots.txt through an httpx client."""
        def handler(request):
            assert request.url.path == "/robots.txt"
            return httpx.Response(200, text=ROBOTS_TXT)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            rules = await fetch_robots_txt("https://example.com/some/page", client)

        assert rules is not None
        assert len(rules.sitemaps) == 2

    @pytest.mark.asyncio
    async def test_missing_robots(self):
        """Test that a 404 yields no rules."""
        transport = httpx.MockTransport(lambda request: httpx.Response(404))

        async with httpx.AsyncClient(transport=transport) as client:
            assert await fetch_robots_txt("https://example.com", client) is None

    @pytest.mark.asyncio
    async def test_network_error(self):
        """Test that a connection failure yields no rules."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            assert await fetch_robots_txt("https://example.com", client) is None
