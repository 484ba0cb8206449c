"""Data models for site crawling and structure analysis."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from sitecrawl.config import CrawlConfig


class CrawlJobStatus(str, Enum):
    """Lifecycle states of a crawl job."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            CrawlJobStatus.COMPLETED,
            CrawlJobStatus.FAILED,
            CrawlJobStatus.CANCELLED,
        )


class NodeType(str, Enum):
    """Kinds of node in the site structure tree."""
    ROOT = "root"
    FOLDER = "folder"
    PAGE = "page"


@dataclass
class CrawlError:
    """A per-URL or job-level failure."""

    url: str
    message: str
    timestamp: datetime = field(default_factory=datetime.now)
    code: Optional[str] = None


@dataclass
class CrawlJob:
    """Bookkeeping record for one crawl run."""

    id: str
    target_id: str
    config: CrawlConfig
    status: CrawlJobStatus = CrawlJobStatus.PENDING
    pages_found: int = 0
    pages_crawled: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    errors: list[CrawlError] = field(default_factory=list)


@dataclass
class SEOData:
    """On-page SEO metadata."""

    title: Optional[str] = None
    meta_description: Optional[str] = None
    meta_keywords: Optional[str] = None
    canonical_url: Optional[str] = None
    robots: Optional[str] = None

    # Open Graph
    og_title: Optional[str] = None
    og_description: Optional[str] = None
    og_image: Optional[str] = None
    og_type: Optional[str] = None
    og_url: Optional[str] = None

    # Twitter Cards
    twitter_card: Optional[str] = None
    twitter_title: Optional[str] = None
    twitter_description: Optional[str] = None
    twitter_image: Optional[str] = None

    # Structured data
    schema_types: list[str] = field(default_factory=list)
    has_structured_data: bool = False


@dataclass
class HeadingsData:
    """Heading text grouped by level."""

    h1: list[str] = field(default_factory=list)
    h2: list[str] = field(default_factory=list)
    h3: list[str] = field(default_factory=list)
    h4: list[str] = field(default_factory=list)
    h5: list[str] = field(default_factory=list)
    h6: list[str] = field(default_factory=list)


@dataclass
class ImageData:
    """An <img> element found on a page."""

    src: str
    alt: Optional[str] = None
    title: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    is_lazy_loaded: bool = False


@dataclass
class LinkData:
    """An <a href> element found on a page."""

    href: str
    text: str = ""
    title: Optional[str] = None
    rel: Optional[str] = None
    is_external: bool = False
    is_nofollow: bool = False


@dataclass
class CrawledPage:
    """A successfully fetched and extracted page. Never modified once recorded."""

    id: str
    target_id: str
    job_id: str
    url: str
    normalized_path: str
    depth: int
    status_code: int = 200
    content_type: Optional[str] = None
    seo: SEOData = field(default_factory=SEOData)
    headings: HeadingsData = field(default_factory=HeadingsData)
    images: list[ImageData] = field(default_factory=list)
    links: list[LinkData] = field(default_factory=list)
    word_count: int = 0
    text_content: str = ""
    response_time_ms: Optional[int] = None
    crawled_at: datetime = field(default_factory=datetime.now)


@dataclass
class FrontierEntry:
    """A URL waiting in the frontier."""

    url: str
    depth: int


@dataclass
class CrawlProgress:
    """Progress event emitted to the caller's callback."""

    target_id: str
    job_id: str
    status: CrawlJobStatus
    pages_found: int
    pages_crawled: int
    current_url: Optional[str] = None
    progress_percent: int = 0


@dataclass
class SitemapUrl:
    """A single <url> entry from a sitemap."""

    loc: str
    lastmod: Optional[str] = None
    priority: Optional[float] = None
    changefreq: Optional[str] = None


@dataclass
class SitemapResult:
    """Outcome of sitemap discovery for one site."""

    urls: list[SitemapUrl] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    sitemaps: list[str] = field(default_factory=list)


@dataclass
class SiteStructureNode:
    """A node of the synthesized site tree."""

    path: str
    depth: int
    page_count: int
    node_type: NodeType
    parent_path: Optional[str] = None
    child_count: int = 0
    children: list["SiteStructureNode"] = field(default_factory=list)
    title: Optional[str] = None
    page_url: Optional[str] = None


@dataclass
class SiteStructureAnalysis:
    """Hierarchy and pattern flags derived from a crawl's pages."""

    total_pages: int
    max_depth: int
    root_node: SiteStructureNode
    top_level_folders: list[str] = field(default_factory=list)
    flat_structure: bool = True
    has_product_catalog: bool = False
    has_blog: bool = False
    has_documentation: bool = False


@dataclass
class TechDetectionContext:
    """Fingerprint signals accumulated across the crawl."""

    headers: dict[str, str] = field(default_factory=dict)
    cookies: list[str] = field(default_factory=list)
    scripts: list[str] = field(default_factory=list)
    html: str = ""
    meta: dict[str, str] = field(default_factory=dict)

    def merge(self, other: "TechDetectionContext") -> None:
        """Fold another page's signals into this context.

        Headers and meta from the first page win; HTML is the latest page's.
        """
        for name, value in other.headers.items():
            self.headers.setdefault(name, value)
        for name, value in other.meta.items():
            self.meta.setdefault(name, value)
        self.cookies.extend(c for c in other.cookies if c not in self.cookies)
        self.scripts.extend(s for s in other.scripts if s not in self.scripts)
        if other.html:
            self.html = other.html


@dataclass
class TechStackItem:
    """A detected technology."""

    category: str
    name: str
    confidence: int
    detected_by: str
    version: Optional[str] = None
    evidence: Optional[str] = None


@dataclass
class CrawlSummary:
    """Aggregate numbers for a finished crawl."""

    total_pages: int = 0
    successful_pages: int = 0
    failed_pages: int = 0
    total_links: int = 0
    total_images: int = 0
    average_response_time_ms: int = 0
    crawl_duration_ms: int = 0


@dataclass
class CrawlResult:
    """Everything a crawl returns, including partial results on failure."""

    success: bool
    job: CrawlJob
    pages: list[CrawledPage]
    errors: list[CrawlError]
    structure: SiteStructureAnalysis
    tech_stack: list[TechStackItem] = field(default_factory=list)
    sitemap_errors: list[str] = field(default_factory=list)
    summary: CrawlSummary = field(default_factory=CrawlSummary)
