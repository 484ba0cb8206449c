"""Polite site crawler that maps page structure, links and technology footprint."""

__version__ = "0.1.0"

from sitecrawl.config import CrawlConfig, settings
from sitecrawl.fetcher import FetchError, PageFetchAdapter
from sitecrawl.frontier import UrlFrontier, normalize_url
from sitecrawl.models import (
    CrawledPage,
    CrawlError,
    CrawlJob,
    CrawlJobStatus,
    CrawlProgress,
    CrawlResult,
    CrawlSummary,
    SiteStructureAnalysis,
    SiteStructureNode,
    TechStackItem,
)
from sitecrawl.orchestrator import CrawlOrchestrator, crawl_site
from sitecrawl.robots import RobotsRules, is_allowed, parse_robots_txt
from sitecrawl.sitemap_parser import SitemapResolver
from sitecrawl.structure import SiteStructureSynthesizer, analyze_site_structure
from sitecrawl.tech_detector import detect_tech_stack

# Infrastructure
from sitecrawl.infrastructure import (
    PolitenessClock,
    PolitenessConfig,
    ProxyPool,
)

__all__ = [
    "CrawlConfig",
    "settings",
    "FetchError",
    "PageFetchAdapter",
    "UrlFrontier",
    "normalize_url",
    "CrawledPage",
    "CrawlError",
    "CrawlJob",
    "CrawlJobStatus",
    "CrawlProgress",
    "CrawlResult",
    "CrawlSummary",
    "SiteStructureAnalysis",
    "SiteStructureNode",
    "TechStackItem",
    "CrawlOrchestrator",
    "crawl_site",
    "RobotsRules",
    "is_allowed",
    "parse_robots_txt",
    "SitemapResolver",
    "SiteStructureSynthesizer",
    "analyze_site_structure",
    "detect_tech_stack",
    "PolitenessClock",
    "PolitenessConfig",
    "ProxyPool",
    "__version__",
]
