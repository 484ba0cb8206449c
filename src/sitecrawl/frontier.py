"""URL frontier: the deduplicated, depth-bounded breadth-first work queue."""

import logging
import re
from collections import deque
from typing import Callable, Deque, Optional, Set
from urllib.parse import urldefrag, urlparse, urlunparse

from sitecrawl.constants import DEFAULT_PORTS, SKIP_EXTENSIONS
from sitecrawl.models import FrontierEntry

logger = logging.getLogger(__name__)

_INDEX_DOCUMENT = re.compile(r'/(?:index\.(?:html?|php|asp|aspx|jsp)|default\.aspx)$', re.IGNORECASE)


def normalize_url(url: str) -> str:
    """Normalize a URL into its deduplication key.

    Lowercases scheme and host, drops default ports and the fragment, strips
    a default index document and collapses a trailing slash. The root path
    stays ``/``. The query string is kept.

    Args:
        url: Absolute URL

    Returns:
        Normalized URL
    """
    url = url.strip()
    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError:
        return urldefrag(url)[0]

    scheme = parsed.scheme.lower()
    host = (parsed.hostname or "").lower()
    netloc = host
    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{host}:{port}"
    if parsed.username:
        auth = parsed.username
        if parsed.password:
            auth = f"{auth}:{parsed.password}"
        netloc = f"{auth}@{netloc}"

    path = parsed.path or "/"
    path = _INDEX_DOCUMENT.sub("/", path)
    path = re.sub(r'/{2,}', '/', path)
    if len(path) > 1:
        path = path.rstrip("/") or "/"

    return urlunparse((scheme, netloc, path, parsed.params, parsed.query, ""))


def extract_domain(url: str) -> str:
    """Get the host of a URL without a leading ``www.``."""
    if "://" not in url:
        url = f"https://{url}"
    host = (urlparse(url).hostname or "").lower()
    return host.removeprefix("www.")


def should_crawl(url: str, base_domain: str, allow_external: bool = False) -> bool:
    """Check the shape of a URL before it enters the frontier.

    Args:
        url: Absolute URL
        base_domain: Target host (a leading www. is ignored)
        allow_external: Accept URLs on other hosts

    Returns:
        True if the URL is an HTTP(S) page on the target site
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return False

    if parsed.scheme not in ("http", "https"):
        return False
    if not parsed.hostname:
        return False

    if not allow_external:
        host = parsed.hostname.lower().removeprefix("www.")
        if host != base_domain.lower().removeprefix("www."):
            return False

    path_lower = parsed.path.lower()
    if any(path_lower.endswith(ext) for ext in SKIP_EXTENSIONS):
        return False

    return True


class UrlFrontier:
    """
    Breadth-first queue with a visited set keyed by normalized URL.

    The visited set is the single source of truth for "already claimed".
    ``enqueue`` checks and inserts with no suspension point in between, so
    concurrent asyncio workers can never claim the same URL twice.
    """

    def __init__(
        self,
        base_domain: str,
        max_pages: int,
        max_depth: int,
        allow_external: bool = False,
        robots_filter: Optional[Callable[[str], bool]] = None,
    ):
        """
        Initialize the frontier.

        Args:
            base_domain: Target host
            max_pages: Maximum number of URLs ever accepted
            max_depth: Maximum accepted depth
            allow_external: Accept URLs on other hosts
            robots_filter: Predicate returning False for disallowed URLs
        """
        self.base_domain = base_domain
        self.max_pages = max_pages
        self.max_depth = max_depth
        self.allow_external = allow_external
        self.robots_filter = robots_filter

        self._queue: Deque[FrontierEntry] = deque()
        self._visited: Set[str] = set()

    def enqueue(self, url: str, depth: int) -> bool:
        """
        Offer a URL to the frontier.

        Args:
            url: Absolute URL
            depth: Link distance from the homepage

        Returns:
            True if the URL was accepted; False if it was already visited,
            over budget, too deep, or filtered by shape or robots rules
        """
        if depth > self.max_depth:
            return False
        if len(self._visited) >= self.max_pages:
            return False

        url = urldefrag(url.strip())[0]
        key = normalize_url(url)
        if key in self._visited:
            return False

        if not should_crawl(url, self.base_domain, self.allow_external):
            return False

        if self.robots_filter is not None and not self.robots_filter(url):
            logger.debug(f"Skipping {url} (disallowed by robots.txt)")
            return False

        self._visited.add(key)
        self._queue.append(FrontierEntry(url=url, depth=depth))
        return True

    def dequeue(self) -> Optional[FrontierEntry]:
        """Pop the next entry in breadth-first order, or None if empty."""
        if not self._queue:
            return None
        return self._queue.popleft()

    def is_visited(self, url: str) -> bool:
        return normalize_url(url) in self._visited

    @property
    def has_pending(self) -> bool:
        return bool(self._queue)

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    @property
    def pages_found(self) -> int:
        """Number of URLs ever accepted."""
        return len(self._visited)
