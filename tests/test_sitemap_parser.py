"""Tests for sitemap parsing and resolution."""

import gzip
import re

import httpx
import pytest

pytest_plugins = ('pytest_asyncio',)

from sitecrawl.models import SitemapUrl
from sitecrawl.sitemap_parser import (
    SitemapResolver,
    filter_sitemap_urls,
    parse_sitemap,
    sort_by_priority,
)


def urlset(*entries):
    """Build a <urlset> document from (loc, priority) pairs."""
    body = []
    for loc, priority in entries:
        prio = f"<priority>{priority}</priority>" if priority is not None else ""
        body.append(f"<url><loc>{loc}</loc>{prio}</url>")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        + "".join(body)
        + "</urlset>"
    )


def sitemapindex(*locs):
    body = "".join(f"<sitemap><loc>{loc}</loc></sitemap>" for loc in locs)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        + body
        + "</sitemapindex>"
    )


def make_client(routes):
    """httpx client that serves the given {url: response} mapping and 404 otherwise."""
    requested = []

    def handler(request):
        url = str(request.url)
        requested.append(url)
        route = routes.get(url)
        if route is None:
            return httpx.Response(404)
        if isinstance(route, Exception):
            raise route
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, text=route)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client, requested


class TestParseSitemap:
    """Test cases for parse_sitemap."""

    def test_urlset(self):
        """Test parsing a URL set with optional fields."""
        xml = (
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
            "<url><loc> https://example.com/a </loc><lastmod>2024-01-01</lastmod>"
            "<changefreq>daily</changefreq><priority>0.8</priority></url>"
            "<url><loc>https://example.com/b</loc></url>"
            "<url><priority>0.3</priority></url>"
            "</urlset>"
        )
        parsed = parse_sitemap(xml)

        assert [u.loc for u in parsed.urls] == ["https://example.com/a", "https://example.com/b"]
        assert parsed.urls[0].priority == 0.8
        assert parsed.urls[0].lastmod == "2024-01-01"
        assert parsed.urls[0].changefreq == "daily"
        assert parsed.urls[1].priority is None
        assert parsed.errors == []

    def test_sitemapindex(self):
        """Test parsing an index of child sitemaps."""
        parsed = parse_sitemap(sitemapindex("https://example.com/s1.xml", "https://example.com/s2.xml"))

        assert parsed.urls == []
        assert parsed.sitemap_indexes == ["https://example.com/s1.xml", "https://example.com/s2.xml"]

    def test_invalid_xml(self):
        """Test that malformed XML is reported, not raised."""
        parsed = parse_sitemap("<urlset><url><loc>broken")

        assert parsed.urls == []
        assert len(parsed.errors) == 1
        assert "Failed to parse sitemap" in parsed.errors[0]

    def test_html_wrapper_removed(self):
        """Test that XML rendered inside an HTML page is still parsed."""
        html = f"<html><body><pre>{urlset(('https://example.com/x', None))}</pre></body></html>"

        parsed = parse_sitemap(html)

        assert [u.loc for u in parsed.urls] == ["https://example.com/x"]

    def test_unknown_root(self):
        """Test that a non-sitemap document is an error."""
        parsed = parse_sitemap("<rss><channel/></rss>")

        assert parsed.errors == ["Unknown sitemap root element: rss"]


class TestSortAndFilter:
    """Test cases for sort_by_priority and filter_sitemap_urls."""

    def test_sort_by_priority_default(self):
        """Test that a missing priority sorts as 0.5 and ties keep order."""
        urls = [
            SitemapUrl("https://example.com/low", priority=0.1),
            SitemapUrl("https://example.com/none"),
            SitemapUrl("https://example.com/high", priority=0.9),
            SitemapUrl("https://example.com/mid", priority=0.5),
        ]

        assert [u.loc for u in sort_by_priority(urls)] == [
            "https://example.com/high",
            "https://example.com/none",
            "https://example.com/mid",
            "https://example.com/low",
        ]

    def test_filter_by_domain(self):
        """Test that off-site URLs are dropped."""
        urls = [
            SitemapUrl("https://www.example.com/a"),
            SitemapUrl("https://cdn.other.com/b"),
        ]

        assert [u.loc for u in filter_sitemap_urls(urls, domain="example.com")] == [
            "https://www.example.com/a"
        ]

    def test_filter_by_patterns(self):
        """Test include and exclude patterns."""
        urls = [
            SitemapUrl("https://example.com/blog/post"),
            SitemapUrl("https://example.com/blog/tag/x"),
            SitemapUrl("https://example.com/shop/item"),
        ]

        result = filter_sitemap_urls(
            urls,
            include_paths=[re.compile(r"/blog/")],
            exclude_paths=[re.compile(r"/tag/")],
        )

        assert [u.loc for u in result] == ["https://example.com/blog/post"]

    def test_filter_by_age(self):
        """Test that stale lastmod values are dropped and unparsable ones kept."""
        urls = [
            SitemapUrl("https://example.com/old", lastmod="2001-01-01"),
            SitemapUrl("https://example.com/new", lastmod="2999-01-01T00:00:00Z"),
            SitemapUrl("https://example.com/odd", lastmod="yesterday"),
        ]

        result = filter_sitemap_urls(urls, max_age_days=30)

        assert [u.loc for u in result] == ["https://example.com/new", "https://example.com/odd"]


class TestSitemapResolver:
    """Test cases for SitemapResolver."""

    @pytest.mark.asyncio
    async def test_resolve_simple_sitemap(self):
        """Test that /sitemap.xml is found and sorted by priority."""
        client, _ = make_client({
            "https://example.com/sitemap.xml": urlset(
                ("https://example.com/a", 0.2),
                ("https://example.com/b", 0.9),
                ("https://example.com/c", None),
            ),
        })

        async with client:
            result = await SitemapResolver(client=client).resolve("https://example.com", 10)

        assert [u.loc for u in result.urls] == [
            "https://example.com/b",
            "https://example.com/c",
            "https://example.com/a",
        ]
        assert result.sitemaps == ["https://example.com/sitemap.xml"]
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_no_sitemap_anywhere(self):
        """Test that missing sitemaps produce no URLs and no errors."""
        client, requested = make_client({})

        async with client:
            result = await SitemapResolver(client=client).resolve("https://example.com/", 10)

        assert result.urls == []
        assert result.errors == []
        assert "https://example.com/sitemap_index.xml" in requested
        assert "https://example.com/wp-sitemap.xml" in requested

    @pytest.mark.asyncio
    async def test_robots_locations_tried_first(self):
        """Test that sitemap URLs from robots.txt take precedence."""
        client, requested = make_client({
            "https://example.com/custom-map.xml": urlset(("https://example.com/from-robots", None)),
            "https://example.com/sitemap.xml": urlset(("https://example.com/from-default", None)),
        })

        async with client:
            result = await SitemapResolver(client=client).resolve(
                "https://example.com", 10, extra_locations=["https://example.com/custom-map.xml"]
            )

        assert [u.loc for u in result.urls] == ["https://example.com/from-robots"]
        assert requested[0] == "https://example.com/custom-map.xml"

    @pytest.mark.asyncio
    async def test_index_with_children(self):
        """Test that an index is expanded and child failures are recorded."""
        client, _ = make_client({
            "https://example.com/sitemap.xml": sitemapindex(
                "https://example.com/pages.xml",
                "https://example.com/missing.xml",
                "https://example.com/broken.xml",
            ),
            "https://example.com/pages.xml": urlset(("https://example.com/p1", 0.4)),
            "https://example.com/broken.xml": httpx.ConnectError("reset"),
        })

        async with client:
            result = await SitemapResolver(client=client).resolve("https://example.com", 10)

        assert [u.loc for u in result.urls] == ["https://example.com/p1"]
        assert "HTTP 404 for https://example.com/missing.xml" in result.errors
        assert any(e.startswith("Failed to fetch child sitemap https://example.com/broken.xml") for e in result.errors)

    @pytest.mark.asyncio
    async def test_priority_survives_truncation(self):
        """Test that the highest-priority URLs are kept when truncating."""
        client, _ = make_client({
            "https://example.com/sitemap.xml": sitemapindex(
                "https://example.com/low.xml",
                "https://example.com/high.xml",
            ),
            "https://example.com/low.xml": urlset(
                ("https://example.com/l1", 0.1),
                ("https://example.com/l2", 0.1),
            ),
            "https://example.com/high.xml": urlset(
                ("https://example.com/h1", 1.0),
                ("https://example.com/h2", 0.9),
            ),
        })

        async with client:
            result = await SitemapResolver(client=client).resolve("https://example.com", 3)

        assert [u.loc for u in result.urls] == [
            "https://example.com/h1",
            "https://example.com/h2",
            "https://example.com/l1",
        ]

    @pytest.mark.asyncio
    async def test_budget_stops_child_fetches(self):
        """Test that child sitemaps are not fetched once the budget is met."""
        client, requested = make_client({
            "https://example.com/sitemap.xml": sitemapindex(
                "https://example.com/one.xml",
                "https://example.com/two.xml",
            ),
            "https://example.com/one.xml": urlset(
                ("https://example.com/a", None),
                ("https://example.com/b", None),
            ),
            "https://example.com/two.xml": urlset(("https://example.com/c", None)),
        })

        async with client:
            result = await SitemapResolver(client=client).resolve("https://example.com", 2)

        assert len(result.urls) == 2
        assert "https://example.com/two.xml" not in requested

    @pytest.mark.asyncio
    async def test_duplicates_removed(self):
        """Test that a URL listed twice appears once."""
        client, _ = make_client({
            "https://example.com/sitemap.xml": urlset(
                ("https://example.com/a", 0.3),
                ("https://example.com/a", 0.8),
            ),
        })

        async with client:
            result = await SitemapResolver(client=client).resolve("https://example.com", 10)

        assert len(result.urls) == 1
        assert result.urls[0].priority == 0.8

    @pytest.mark.asyncio
    async def test_gzipped_sitemap(self):
        """Test that gzip-compressed sitemaps are decompressed."""
        body = gzip.compress(urlset(("https://example.com/zipped", None)).encode())
        client, _ = make_client({
            "https://example.com/sitemap.xml": sitemapindex("https://example.com/pages.xml.gz"),
            "https://example.com/pages.xml.gz": httpx.Response(200, content=body),
        })

        async with client:
            result = await SitemapResolver(client=client).resolve("https://example.com", 10)

        assert [u.loc for u in result.urls] == ["https://example.com/zipped"]

    @pytest.mark.asyncio
    async def test_nesting_depth_limited(self):
        """Test that index nesting beyond three levels is not followed."""
        client, requested = make_client({
            "https://example.com/sitemap.xml": sitemapindex("https://example.com/l1.xml"),
            "https://example.com/l1.xml": sitemapindex("https://example.com/l2.xml"),
            "https://example.com/l2.xml": sitemapindex("https://example.com/l3.xml"),
            "https://example.com/l3.xml": sitemapindex("https://example.com/l4.xml"),
            "https://example.com/l4.xml": urlset(("https://example.com/too-deep", None)),
        })

        async with client:
            result = await SitemapResolver(client=client).resolve("https://example.com", 10)

        assert "https://example.com/l3.xml" in requested
        assert "https://example.com/l4.xml" not in requested
        assert result.urls == []

    @pytest.mark.asyncio
    async def test_budget_prefers_high_priority_children(self):
        """Test 20 default and 30 high-priority child URLs truncated to 25."""
        low = [(f"https://example.com/low/{i}", None) for i in range(20)]
        high = [(f"https://example.com/high/{i}", 0.8) for i in range(30)]
        client, _ = make_client({
            "https://example.com/sitemap.xml": sitemapindex(
                "https://example.com/low.xml",
                "https://example.com/high.xml",
            ),
            "https://example.com/low.xml": urlset(*low),
            "https://example.com/high.xml": urlset(*high),
        })

        async with client:
            result = await SitemapResolver(client=client).resolve("https://example.com", 25)

        assert len(result.urls) == 25
        assert all(u.priority == 0.8 for u in result.urls)
