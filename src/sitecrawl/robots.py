"""robots.txt parsing and allow/deny decisions.

Directives are grouped by User-agent block. For a given crawler token the
most specific matching group is used, falling back to the ``*`` group. Within
a group the longest matching path prefix wins and a tie goes to Allow.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import httpx

from sitecrawl.browser_config import get_common_headers
from sitecrawl.constants import ROBOTS_FETCH_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

ALLOW = "allow"
DISALLOW = "disallow"


@dataclass
class RobotsGroup:
    """Directives for one or more user agents."""

    user_agents: List[str] = field(default_factory=list)
    rules: List[Tuple[str, str]] = field(default_factory=list)  # (directive, path prefix)
    crawl_delay_ms: Optional[int] = None


@dataclass
class RobotsRules:
    """Parsed robots.txt. Immutable once parsed for a job."""

    groups: List[RobotsGroup] = field(default_factory=list)
    sitemaps: List[str] = field(default_factory=list)

    def group_for(self, user_agent: str = "*") -> Optional[RobotsGroup]:
        """Select the group that applies to a user agent.

        Args:
            user_agent: Crawler product token or full user agent string

        Returns:
            Most specific matching group, the ``*`` group, or None
        """
        agent = user_agent.lower()
        best: Optional[RobotsGroup] = None
        best_len = 0
        wildcard: Optional[RobotsGroup] = None

        for group in self.groups:
            for token in group.user_agents:
                if token == "*":
                    if wildcard is None:
                        wildcard = group
                elif agent != "*" and token in agent and len(token) > best_len:
                    best = group
                    best_len = len(token)

        return best or wildcard

    def crawl_delay_ms(self, user_agent: str = "*") -> Optional[int]:
        group = self.group_for(user_agent)
        return group.crawl_delay_ms if group else None


def parse_robots_txt(content: str) -> RobotsRules:
    """Parse robots.txt content into grouped rules.

    Consecutive User-agent lines share one group. Sitemap lines are global
    and collected regardless of the group they appear in.

    Args:
        content: Raw robots.txt text

    Returns:
        Parsed RobotsRules
    """
    rules = RobotsRules()
    current: Optional[RobotsGroup] = None
    in_agent_block = False

    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue

        key, value = line.split(":", 1)
        key = key.strip().lower()
        value = value.strip()

        if key == "user-agent":
            if current is None or not in_agent_block:
                current = RobotsGroup()
                rules.groups.append(current)
            current.user_agents.append(value.lower())
            in_agent_block = True
            continue

        if key == "sitemap":
            if value:
                rules.sitemaps.append(value)
            continue

        in_agent_block = False
        if current is None:
            # Directives before any User-agent line are ignored
            continue

        if key in (ALLOW, DISALLOW):
            # An empty Disallow allows everything; nothing to record
            if value:
                current.rules.append((key, value))
        elif key == "crawl-delay":
            try:
                current.crawl_delay_ms = int(float(value) * 1000)
            except ValueError:
                logger.debug(f"Ignoring invalid Crawl-delay: {value!r}")

    return rules


def is_allowed(url: str, rules: Optional[RobotsRules], user_agent: str = "*") -> bool:
    """Check if a URL may be fetched under robots.txt rules.

    Args:
        url: Absolute URL to check
        rules: Parsed rules, or None when robots.txt was unavailable
        user_agent: Crawler token used to pick the group

    Returns:
        True if the URL can be crawled
    """
    if rules is None:
        return True

    group = rules.group_for(user_agent)
    if group is None or not group.rules:
        return True

    parsed = urlparse(url)
    path = parsed.path or "/"
    if parsed.query:
        path = f"{path}?{parsed.query}"

    best_directive = ALLOW
    best_len = -1
    for directive, prefix in group.rules:
        if not path.startswith(prefix):
            continue
        length = len(prefix)
        if length > best_len or (length == best_len and directive == ALLOW):
            best_directive = directive
            best_len = length

    return best_directive == ALLOW


async def fetch_robots_txt(
    base_url: str,
    client: Optional[httpx.AsyncClient] = None,
    user_agent: Optional[str] = None,
) -> Optional[RobotsRules]:
    """Fetch and parse robots.txt for a site.

    Args:
        base_url: Site root, e.g. https://example.com
        client: Optional shared httpx client
        user_agent: User agent header to send

    Returns:
        Parsed rules, or None (allow all) if robots.txt could not be fetched
    """
    parsed = urlparse(base_url)
    robots_url = f"{parsed.scheme}://{parsed.netloc}/robots.txt"
    headers = get_common_headers(user_agent)
    headers["Accept"] = "text/plain,text/html,*/*"

    try:
        if client is None:
            async with httpx.AsyncClient(
                timeout=ROBOTS_FETCH_TIMEOUT_SECONDS, follow_redirects=True
            ) as own_client:
                response = await own_client.get(robots_url, headers=headers)
        else:
            response = await client.get(
                robots_url, headers=headers, timeout=ROBOTS_FETCH_TIMEOUT_SECONDS
            )
    except httpx.HTTPError as e:
        logger.warning(f"Could not load robots.txt from {robots_url}: {e}")
        return None

    if response.status_code != 200:
        logger.info(f"No robots.txt found at {robots_url} (status: {response.status_code})")
        return None

    logger.info(f"Loaded robots.txt from {robots_url}")
    return parse_robots_txt(response.text)
