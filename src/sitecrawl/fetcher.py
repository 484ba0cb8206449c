"""Page fetch and extraction adapter.

One call to ``PageFetchAdapter.fetch_page`` runs the per-page pipeline:

    prepare   pick the next user agent and proxy from the rotation pools
    navigate  one backend navigation (browser or plain HTTP)
    extract   parse the HTML into a CrawledPage plus fingerprint signals

Any failure along the way surfaces as ``FetchError``.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

from sitecrawl.browser_config import UserAgentRotator
from sitecrawl.constants import BLOCKING_STATUS_CODES
from sitecrawl.extractor import create_crawled_page, extract_from_html
from sitecrawl.frontier import should_crawl
from sitecrawl.infrastructure.proxy_rotation import ProxyConfig, ProxyEntry, ProxyPool
from sitecrawl.models import CrawledPage, TechDetectionContext

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Raised when a page cannot be navigated to or extracted."""

    def __init__(self, message: str, url: str, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.code = code


@dataclass
class RequestOptions:
    """Identity chosen for one navigation."""

    user_agent: str
    proxy: Optional[ProxyConfig] = None
    timeout_ms: int = 30000
    network_idle_timeout_ms: int = 20000


@dataclass
class RawPage:
    """What a backend returns for one navigation."""

    url: str
    final_url: str
    status_code: int
    html: str
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: List[str] = field(default_factory=list)
    scripts: List[str] = field(default_factory=list)
    content_type: Optional[str] = None


class PageBackend(Protocol):
    """Navigation primitive used by the adapter.

    Implementations raise FetchError (or any exception) on navigation
    failure or timeout.
    """

    async def start(self) -> None: ...

    async def close(self) -> None: ...

    async def fetch(self, url: str, options: RequestOptions) -> RawPage: ...


@dataclass
class PageFetchResult:
    """Outcome of a successful fetch_page call."""

    page: CrawledPage
    links: List[str]
    tech_context: TechDetectionContext


# Block page content patterns (these indicate actual blocking, not just CDN usage)
BLOCK_CONTENT_PATTERNS = {
    "cloudflare": [
        "attention required! | cloudflare",
        "checking your browser before accessing",
        "enable javascript and cookies to continue",
        "performance & security by cloudflare",
    ],
    "akamai": [
        "you don't have permission to access",
        "your request has been blocked",
    ],
    "sucuri": [
        "sucuri website firewall",
        "access denied - sucuri",
    ],
    "imperva": [
        "incapsula incident",
        "powered by incapsula",
    ],
    "aws_waf": [
        "request blocked by aws waf",
    ],
    "datadome": [
        "blocked by datadome",
        "datadome captcha",
    ],
    "perimeterx": [
        "press & hold",
        "perimeterx",
    ],
}

GENERIC_BLOCK_INDICATORS = [
    "access denied</title>",
    "403 forbidden</title>",
    "please verify you are human",
    "you have been blocked",
    "your ip has been blocked",
    "complete the captcha",
    "prove you are not a robot",
]

# Interstitials that load with 200 but need human interaction
CHALLENGE_PAGE_INDICATORS = [
    "please wait while we verify your browser",
    "checking if the site connection is secure",
    "just a moment...</title>",
    "ddos protection by",
    "one more step</title>",
    "browser verification</title>",
]


def detect_waf_block(status_code: int, html: str) -> Optional[str]:
    """Detect if a response is a WAF/CDN block or challenge page.

    Args:
        status_code: HTTP status code
        html: Page HTML content

    Returns:
        WAF provider name if blocked, None otherwise
    """
    html_lower = html.lower() if html else ""

    def provider() -> Optional[str]:
        for waf_name, patterns in BLOCK_CONTENT_PATTERNS.items():
            if any(pattern in html_lower for pattern in patterns):
                return waf_name
        return None

    if status_code in BLOCKING_STATUS_CODES:
        name = provider()
        if name:
            return name
        if any(indicator in html_lower for indicator in GENERIC_BLOCK_INDICATORS):
            return "waf_block"
        return None

    if status_code == 200:
        if any(indicator in html_lower for indicator in CHALLENGE_PAGE_INDICATORS):
            return provider() or "challenge_page"

    return None


class PageFetchAdapter:
    """
    Drives one navigation and extraction per URL.

    The adapter owns the rotation pools; the backend only navigates.
    """

    def __init__(
        self,
        backend: PageBackend,
        base_domain: str,
        user_agents: Optional[UserAgentRotator] = None,
        proxy_pool: Optional[ProxyPool] = None,
        navigation_timeout_ms: int = 30000,
        network_idle_timeout_ms: int = 20000,
        allow_external: bool = False,
    ):
        """
        Initialize the adapter.

        Args:
            backend: Navigation backend
            base_domain: Target host used to filter discovered links
            user_agents: User agent rotation
            proxy_pool: Optional proxy rotation
            navigation_timeout_ms: Per-page navigation timeout
            network_idle_timeout_ms: Bound on the network idle wait
            allow_external: Return links on other hosts as well
        """
        self.backend = backend
        self.base_domain = base_domain
        self.user_agents = user_agents or UserAgentRotator()
        self.proxy_pool = proxy_pool
        self.navigation_timeout_ms = navigation_timeout_ms
        self.network_idle_timeout_ms = network_idle_timeout_ms
        self.allow_external = allow_external

    def prepare(self) -> tuple[RequestOptions, Optional[ProxyEntry]]:
        """Choose user agent and proxy for the next navigation."""
        proxy_entry = self.proxy_pool.get_proxy() if self.proxy_pool else None
        options = RequestOptions(
            user_agent=self.user_agents.next(),
            proxy=proxy_entry.config if proxy_entry else None,
            timeout_ms=self.navigation_timeout_ms,
            network_idle_timeout_ms=self.network_idle_timeout_ms,
        )
        return options, proxy_entry

    async def navigate(self, url: str, options: RequestOptions) -> RawPage:
        """Run one backend navigation and reject error or block pages."""
        try:
            raw = await self.backend.fetch(url, options)
        except FetchError:
            raise
        except Exception as e:
            raise FetchError(f"Navigation failed: {e}", url=url, code="navigation") from e

        if raw.status_code >= 400:
            waf = detect_waf_block(raw.status_code, raw.html)
            suffix = f" (blocked by {waf})" if waf else ""
            raise FetchError(
                f"HTTP {raw.status_code}{suffix}",
                url=url,
                status_code=raw.status_code,
                code="waf_block" if waf else "http_error",
            )

        waf = detect_waf_block(raw.status_code, raw.html)
        if waf:
            raise FetchError(
                f"Challenge page served by {waf}",
                url=url,
                status_code=raw.status_code,
                code="waf_block",
            )

        return raw

    def extract(
        self,
        raw: RawPage,
        depth: int,
        target_id: str,
        job_id: str,
        response_time_ms: int,
    ) -> PageFetchResult:
        """Turn a raw navigation into a page record, link list and tech signals."""
        try:
            extraction = extract_from_html(raw.html, raw.final_url or raw.url)
        except Exception as e:
            raise FetchError(f"Extraction failed: {e}", url=raw.url, code="extraction") from e

        page = create_crawled_page(
            target_id=target_id,
            job_id=job_id,
            url=raw.url,
            depth=depth,
            extraction=extraction,
            status_code=raw.status_code,
            response_time_ms=response_time_ms,
            content_type=raw.content_type or "text/html",
        )

        links = []
        for link in extraction.links:
            if link.href not in links and should_crawl(link.href, self.base_domain, self.allow_external):
                links.append(link.href)

        scripts = list(dict.fromkeys(raw.scripts + extraction.scripts))
        tech_context = TechDetectionContext(
            headers={k.lower(): v for k, v in raw.headers.items()},
            cookies=list(raw.cookies),
            scripts=scripts,
            html=raw.html,
            meta=extraction.meta,
        )

        return PageFetchResult(page=page, links=links, tech_context=tech_context)

    async def fetch_page(
        self,
        url: str,
        depth: int,
        target_id: str,
        job_id: str,
    ) -> PageFetchResult:
        """
        Fetch and extract a single page.

        Args:
            url: URL to fetch
            depth: Link distance from the homepage
            target_id: Crawl target identifier
            job_id: Owning crawl job

        Returns:
            PageFetchResult

        Raises:
            FetchError: On navigation failure, timeout, HTTP error or block page
        """
        options, proxy_entry = self.prepare()
        start_time = time.monotonic()

        try:
            raw = await self.navigate(url, options)
        except FetchError:
            if proxy_entry is not None:
                self.proxy_pool.record_result(proxy_entry, success=False)
            raise

        if proxy_entry is not None:
            self.proxy_pool.record_result(proxy_entry, success=True)

        response_time_ms = int((time.monotonic() - start_time) * 1000)
        result = self.extract(raw, depth, target_id, job_id, response_time_ms)
        logger.debug(
            f"Fetched {url} (status={raw.status_code}, {response_time_ms}ms, "
            f"{len(result.links)} links)"
        )
        return result
