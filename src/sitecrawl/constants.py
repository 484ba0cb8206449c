# src/sitecrawl/constants.py
"""Centralized constants for the site crawler.

This module contains magic numbers and default values that are used
across multiple modules. For per-job settings, see config.py and
CrawlConfig.
"""

# =============================================================================
# Crawl Budget Defaults
# =============================================================================

DEFAULT_MAX_DEPTH = 2
DEFAULT_MAX_PAGES = 100
DEFAULT_MAX_CONCURRENCY = 3

# =============================================================================
# Politeness Defaults
# =============================================================================

# Randomized delay window between dispatches (milliseconds)
DEFAULT_MIN_DELAY_MS = 2000
DEFAULT_MAX_DELAY_MS = 5000

DEFAULT_MAX_REQUESTS_PER_MINUTE = 20

# Trailing window used for the per-minute cap (seconds)
ROLLING_WINDOW_SECONDS = 60.0

# =============================================================================
# Navigation
# =============================================================================

DEFAULT_NAVIGATION_TIMEOUT_MS = 30000
DEFAULT_NETWORK_IDLE_TIMEOUT_MS = 20000

# robots.txt / sitemap fetches are small, keep them short
ROBOTS_FETCH_TIMEOUT_SECONDS = 5.0
SITEMAP_FETCH_TIMEOUT_SECONDS = 30.0

DEFAULT_ROBOTS_USER_AGENT = "SiteCrawlBot"
DEFAULT_USER_AGENT = "SiteCrawlBot/1.0"

# =============================================================================
# Extraction
# =============================================================================

# Upper bound for stored visible text per page
MAX_TEXT_CONTENT_LENGTH = 10000

# =============================================================================
# Sitemaps
# =============================================================================

# Priority assumed when a <url> entry has none
DEFAULT_SITEMAP_PRIORITY = 0.5

# Nested sitemap index recursion limit
MAX_SITEMAP_DEPTH = 3

SITEMAP_LOCATIONS = [
    "/sitemap.xml",
    "/sitemap_index.xml",
    "/sitemap-index.xml",
    "/wp-sitemap.xml",
    "/sitemap/sitemap.xml",
]

# =============================================================================
# URL Filtering
# =============================================================================

SKIP_EXTENSIONS = frozenset({
    '.pdf', '.jpg', '.jpeg', '.png', '.gif', '.svg', '.webp',
    '.zip', '.tar', '.gz', '.mp4', '.mp3', '.avi', '.mov',
    '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
    '.css', '.js', '.xml', '.json', '.ico', '.woff', '.woff2', '.ttf',
})

DEFAULT_PORTS = {"http": 80, "https": 443}

# Status codes that usually come back from a WAF/CDN block page
BLOCKING_STATUS_CODES = frozenset({403, 503, 429, 406, 451})
