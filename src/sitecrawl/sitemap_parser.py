"""Sitemap discovery and parsing for frontier seeding."""

import gzip
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Pattern, Set
from urllib.parse import urlparse
from xml.etree import ElementTree as ET

import httpx

from sitecrawl.browser_config import get_common_headers
from sitecrawl.constants import (
    DEFAULT_SITEMAP_PRIORITY,
    MAX_SITEMAP_DEPTH,
    SITEMAP_FETCH_TIMEOUT_SECONDS,
    SITEMAP_LOCATIONS,
)
from sitecrawl.models import SitemapResult, SitemapUrl

logger = logging.getLogger(__name__)


@dataclass
class ParsedSitemap:
    """Contents of a single sitemap document."""

    urls: List[SitemapUrl] = field(default_factory=list)
    sitemap_indexes: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def _local_name(tag: str) -> str:
    return tag.split('}')[-1] if '}' in tag else tag


def _child_text(element: ET.Element, name: str) -> Optional[str]:
    for child in element:
        if _local_name(child.tag) == name and child.text:
            text = child.text.strip()
            return text or None
    return None


def _clean_xml_content(content: str) -> str:
    """Clean XML content by removing any HTML wrapper."""
    content = content.lstrip('\ufeff')
    content = re.sub(r'<!DOCTYPE[^>]*>', '', content)

    if '<html' in content.lower():
        match = re.search(r'(<\?xml.*?</(?:urlset|sitemapindex)>)', content, re.DOTALL)
        if match:
            return match.group(1)

        match = re.search(r'(<(?:urlset|sitemapindex).*?</(?:urlset|sitemapindex)>)', content, re.DOTALL)
        if match:
            return match.group(1)

    return content.strip()


def parse_sitemap(content: str) -> ParsedSitemap:
    """
    Parse sitemap XML content.

    Handles both ``<urlset>`` documents and ``<sitemapindex>`` documents.
    Parse failures are reported in ``errors`` rather than raised.

    Args:
        content: Sitemap XML text

    Returns:
        ParsedSitemap with page URLs or child sitemap locations
    """
    result = ParsedSitemap()

    try:
        root = ET.fromstring(_clean_xml_content(content))
    except ET.ParseError as e:
        result.errors.append(f"Failed to parse sitemap: {e}")
        return result

    root_tag = _local_name(root.tag)

    if root_tag == 'sitemapindex':
        for sitemap in root:
            if _local_name(sitemap.tag) != 'sitemap':
                continue
            loc = _child_text(sitemap, 'loc')
            if loc:
                result.sitemap_indexes.append(loc)
    elif root_tag == 'urlset':
        for url_elem in root:
            if _local_name(url_elem.tag) != 'url':
                continue
            loc = _child_text(url_elem, 'loc')
            if not loc:
                continue

            priority = None
            priority_text = _child_text(url_elem, 'priority')
            if priority_text:
                try:
                    priority = float(priority_text)
                except ValueError:
                    logger.debug(f"Ignoring invalid priority {priority_text!r} for {loc}")

            result.urls.append(SitemapUrl(
                loc=loc,
                lastmod=_child_text(url_elem, 'lastmod'),
                priority=priority,
                changefreq=_child_text(url_elem, 'changefreq'),
            ))
    else:
        result.errors.append(f"Unknown sitemap root element: {root_tag}")

    return result


def sort_by_priority(urls: Iterable[SitemapUrl]) -> List[SitemapUrl]:
    """Sort sitemap URLs by priority, highest first. Missing priority counts as 0.5."""
    return sorted(
        urls,
        key=lambda u: u.priority if u.priority is not None else DEFAULT_SITEMAP_PRIORITY,
        reverse=True,
    )


def filter_sitemap_urls(
    urls: Iterable[SitemapUrl],
    domain: Optional[str] = None,
    include_paths: Optional[List[Pattern]] = None,
    exclude_paths: Optional[List[Pattern]] = None,
    max_age_days: Optional[int] = None,
) -> List[SitemapUrl]:
    """
    Filter sitemap URLs.

    Args:
        urls: URLs to filter
        domain: Keep only URLs on this host (a leading www. is ignored)
        include_paths: Keep only URLs matching at least one pattern
        exclude_paths: Drop URLs matching any pattern
        max_age_days: Drop URLs whose lastmod is older than this

    Returns:
        Filtered list, order preserved
    """
    cutoff = None
    if max_age_days is not None:
        cutoff = datetime.now(timezone.utc) - timedelta(days=max_age_days)
    wanted_host = domain.lower().removeprefix("www.") if domain else None

    result = []
    for url in urls:
        if wanted_host:
            host = (urlparse(url.loc).hostname or "").lower().removeprefix("www.")
            if host != wanted_host:
                continue
        if include_paths and not any(p.search(url.loc) for p in include_paths):
            continue
        if exclude_paths and any(p.search(url.loc) for p in exclude_paths):
            continue
        if cutoff and url.lastmod:
            try:
                modified = datetime.fromisoformat(url.lastmod.replace("Z", "+00:00"))
            except ValueError:
                modified = None
            if modified is not None:
                if modified.tzinfo is None:
                    modified = modified.replace(tzinfo=timezone.utc)
                if modified < cutoff:
                    continue
        result.append(url)
    return result


class SitemapResolver:
    """
    Discover and parse XML sitemaps for a site.

    Supports:
    - robots.txt ``Sitemap:`` locations, tried before the well-known paths
    - sitemap index files, resolved recursively up to three levels
    - gzipped sitemaps
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        user_agent: Optional[str] = None,
        timeout: float = SITEMAP_FETCH_TIMEOUT_SECONDS,
    ):
        """
        Initialize the sitemap resolver.

        Args:
            client: Optional shared httpx client
            user_agent: User agent header to send
            timeout: Per-request timeout in seconds
        """
        self._client = client
        self.user_agent = user_agent
        self.timeout = timeout

    async def resolve(
        self,
        base_url: str,
        max_urls: int,
        extra_locations: Optional[List[str]] = None,
    ) -> SitemapResult:
        """
        Resolve the site's sitemap into a prioritized URL list.

        The first candidate location that returns a sitemap wins. Child
        sitemaps of an index are fetched in order until the collected count
        reaches max_urls; everything collected is then sorted by priority and
        truncated.

        Args:
            base_url: Site root, e.g. https://example.com
            max_urls: URL budget
            extra_locations: Sitemap URLs from robots.txt, tried first

        Returns:
            SitemapResult with URLs sorted by priority and any errors
        """
        if self._client is not None:
            return await self._resolve(self._client, base_url, max_urls, extra_locations)

        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            return await self._resolve(client, base_url, max_urls, extra_locations)

    async def _resolve(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        max_urls: int,
        extra_locations: Optional[List[str]],
    ) -> SitemapResult:
        result = SitemapResult()
        collected: List[SitemapUrl] = []
        root = base_url.rstrip('/')

        candidates: List[str] = []
        for location in list(extra_locations or []) + [f"{root}{p}" for p in SITEMAP_LOCATIONS]:
            if location not in candidates:
                candidates.append(location)

        for candidate in candidates:
            try:
                response = await self._get(client, candidate)
            except httpx.HTTPError as e:
                result.errors.append(f"Failed to fetch {candidate}: {e}")
                continue

            if response.status_code != 200:
                logger.debug(f"No sitemap at {candidate} (status: {response.status_code})")
                continue

            logger.info(f"Found sitemap: {candidate}")
            parsed = parse_sitemap(self._decode(candidate, response))
            if parsed.errors and not parsed.urls and not parsed.sitemap_indexes:
                result.errors.extend(parsed.errors)
                continue

            result.sitemaps.append(candidate)
            result.errors.extend(parsed.errors)
            collected.extend(parsed.urls)
            await self._resolve_children(
                client, parsed.sitemap_indexes, max_urls, collected, result, depth=1,
                seen={candidate},
            )
            break

        seen_locs: Set[str] = set()
        unique = []
        for url in sort_by_priority(collected):
            if url.loc in seen_locs:
                continue
            seen_locs.add(url.loc)
            unique.append(url)

        result.urls = unique[:max_urls]
        logger.info(
            f"Sitemap resolution for {root}: {len(result.urls)} URLs, "
            f"{len(result.errors)} errors"
        )
        return result

    async def _resolve_children(
        self,
        client: httpx.AsyncClient,
        children: List[str],
        max_urls: int,
        collected: List[SitemapUrl],
        result: SitemapResult,
        depth: int,
        seen: Set[str],
    ) -> None:
        """Recursively fetch child sitemaps of an index."""
        if depth > MAX_SITEMAP_DEPTH:
            if children:
                logger.warning(f"Sitemap index nesting deeper than {MAX_SITEMAP_DEPTH}, skipping")
            return

        for child_url in children:
            if len(collected) >= max_urls:
                logger.info(f"Reached max URLs limit ({max_urls})")
                return
            if child_url in seen:
                continue
            seen.add(child_url)

            try:
                response = await self._get(client, child_url)
            except httpx.HTTPError as e:
                result.errors.append(f"Failed to fetch child sitemap {child_url}: {e}")
                continue

            if response.status_code != 200:
                result.errors.append(f"HTTP {response.status_code} for {child_url}")
                continue

            parsed = parse_sitemap(self._decode(child_url, response))
            result.errors.extend(f"{child_url}: {err}" for err in parsed.errors)
            if parsed.urls or parsed.sitemap_indexes:
                result.sitemaps.append(child_url)
            collected.extend(parsed.urls)
            logger.info(f"Extracted {len(parsed.urls)} URLs from {child_url}")

            if parsed.sitemap_indexes:
                await self._resolve_children(
                    client, parsed.sitemap_indexes, max_urls, collected, result,
                    depth=depth + 1, seen=seen,
                )

    async def _get(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        headers = get_common_headers(self.user_agent)
        headers["Accept"] = "application/xml, text/xml, */*"
        return await client.get(url, headers=headers, timeout=self.timeout)

    @staticmethod
    def _decode(url: str, response: httpx.Response) -> str:
        """Return the response body as text, gunzipping .gz sitemaps."""
        content = response.content
        if url.endswith('.gz') or content[:2] == b'\x1f\x8b':
            try:
                content = gzip.decompress(content)
            except OSError:
                logger.debug(f"{url} is not gzip data despite its name")
            return content.decode('utf-8', errors='replace')
        return response.text
