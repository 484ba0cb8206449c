"""Crawl orchestration: the per-job state machine and worker pool."""

import asyncio
import copy
import logging
import time
import uuid
from datetime import datetime
from typing import Callable, List, Optional

import httpx

from sitecrawl.browser_config import UserAgentRotator
from sitecrawl.browser_fetcher import BrowserPageFetcher
from sitecrawl.config import CrawlConfig, settings
from sitecrawl.constants import ROBOTS_FETCH_TIMEOUT_SECONDS
from sitecrawl.fetcher import FetchError, PageBackend, PageFetchAdapter, PageFetchResult
from sitecrawl.frontier import UrlFrontier, extract_domain
from sitecrawl.http_fetcher import HttpPageFetcher
from sitecrawl.infrastructure.proxy_rotation import create_proxy_pool
from sitecrawl.infrastructure.rate_limiter import PolitenessClock, PolitenessConfig
from sitecrawl.models import (
    CrawledPage,
    CrawlError,
    CrawlJob,
    CrawlJobStatus,
    CrawlProgress,
    CrawlResult,
    CrawlSummary,
    FrontierEntry,
    NodeType,
    SiteStructureAnalysis,
    SiteStructureNode,
    TechDetectionContext,
    TechStackItem,
)
from sitecrawl.robots import RobotsRules, fetch_robots_txt, is_allowed
from sitecrawl.sitemap_parser import SitemapResolver, filter_sitemap_urls
from sitecrawl.structure import SiteStructureSynthesizer
from sitecrawl.tech_detector import detect_tech_stack

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[CrawlProgress], None]

# Depth at which sitemap URLs enter the frontier, regardless of link distance
SITEMAP_SEED_DEPTH = 1


def create_page_backend(config: CrawlConfig) -> PageBackend:
    """Pick the navigation backend for a config.

    Args:
        config: Crawl configuration

    Returns:
        BrowserPageFetcher when use_headless_browser is set, HttpPageFetcher otherwise
    """
    if config.use_headless_browser:
        return BrowserPageFetcher(headless=True)
    return HttpPageFetcher()


def _empty_structure() -> SiteStructureAnalysis:
    return SiteStructureAnalysis(
        total_pages=0,
        max_depth=0,
        root_node=SiteStructureNode(path='/', depth=0, page_count=0, node_type=NodeType.ROOT),
    )


class CrawlOrchestrator:
    """
    Runs one crawl job from seeding to the consolidated result.

    States move pending -> running -> completed | failed, and abort() moves
    a job to cancelled at the next checkpoint. All per-job state (visited
    set, politeness clock, pages, errors) lives on the instance.

    Usage:

        orchestrator = CrawlOrchestrator("acme", CrawlConfig(max_pages=20))
        result = await orchestrator.crawl("acme.com")
    """

    def __init__(
        self,
        target_id: str,
        config: Optional[CrawlConfig] = None,
        backend: Optional[PageBackend] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        politeness: Optional[PolitenessClock] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            target_id: Identifier of the site being crawled
            config: Crawl configuration (defaults apply when omitted)
            backend: Started page backend; one is created from config when omitted
            http_client: httpx client for robots.txt and sitemap fetches
            politeness: Politeness clock; one is built from config when omitted
        """
        self.target_id = target_id
        self.config = config or CrawlConfig()
        self.job = CrawlJob(id=str(uuid.uuid4()), target_id=target_id, config=self.config)

        self._backend = backend
        self._owns_backend = backend is None
        self._http_client = http_client
        self._politeness = politeness or PolitenessClock(PolitenessConfig(
            min_delay_ms=self.config.min_delay_ms,
            max_delay_ms=self.config.max_delay_ms,
            max_requests_per_minute=self.config.max_requests_per_minute,
        ))

        self._pages: List[CrawledPage] = []
        self._errors: List[CrawlError] = []
        self._sitemap_errors: List[str] = []
        self._tech_context = TechDetectionContext()
        self._robots_rules: Optional[RobotsRules] = None
        self._frontier: Optional[UrlFrontier] = None
        self._on_progress: Optional[ProgressCallback] = None

        self._aborted = False
        self._in_flight = 0
        self._condition: Optional[asyncio.Condition] = None
        self._started_monotonic: Optional[float] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def crawl(self, domain: str, on_progress: Optional[ProgressCallback] = None) -> CrawlResult:
        """
        Crawl a site.

        Never raises: orchestration failures set status ``failed`` and the
        pages and errors gathered so far are still returned.

        Args:
            domain: Domain or URL to crawl (https:// is assumed when no scheme)
            on_progress: Optional callback receiving CrawlProgress events

        Returns:
            CrawlResult
        """
        if self.job.status != CrawlJobStatus.PENDING:
            logger.warning(f"Job {self.job.id} is already {self.job.status.value}, not starting")
            return self._build_result(_empty_structure(), [])

        self._on_progress = on_progress
        base_url = domain if domain.startswith(('http://', 'https://')) else f"https://{domain}"
        base_domain = extract_domain(base_url)

        self._transition(CrawlJobStatus.RUNNING)
        self.job.started_at = datetime.now()
        self._started_monotonic = time.monotonic()
        logger.info(f"Starting crawl job {self.job.id} for {base_url}")
        self._emit_progress()

        failed = False
        try:
            await self._run(base_url, base_domain)
        except Exception as e:
            failed = True
            logger.exception(f"Crawl job {self.job.id} failed: {e}")
            self._errors.append(CrawlError(url=base_url, message=str(e) or type(e).__name__, code="orchestration"))

        structure = _empty_structure()
        tech_stack: List[TechStackItem] = []
        try:
            structure = SiteStructureSynthesizer().synthesize(self._pages)
            tech_stack = detect_tech_stack(self._tech_context)
        except Exception as e:
            failed = True
            logger.exception(f"Post-processing failed for job {self.job.id}: {e}")
            self._errors.append(CrawlError(url=base_url, message=str(e) or type(e).__name__, code="analysis"))

        self._finalize(failed)
        self._emit_progress()

        logger.info(
            f"Crawl job {self.job.id} {self.job.status.value}: "
            f"{len(self._pages)} pages, {len(self._errors)} errors in {self.job.duration_ms}ms"
        )
        return self._build_result(structure, tech_stack)

    def abort(self) -> None:
        """Request cancellation. Idempotent and safe to call at any time.

        In-flight fetches finish and their pages are kept; no new fetch starts.
        """
        if self._aborted:
            return
        self._aborted = True
        logger.info(f"Abort requested for crawl job {self.job.id}")

        if self.job.status == CrawlJobStatus.PENDING:
            self._transition(CrawlJobStatus.CANCELLED)
            self.job.completed_at = datetime.now()
            self.job.duration_ms = 0

    def get_job(self) -> CrawlJob:
        """Snapshot of the job record."""
        return copy.deepcopy(self.job)

    @property
    def is_aborted(self) -> bool:
        return self._aborted

    # ------------------------------------------------------------------
    # Seeding and worker pool
    # ------------------------------------------------------------------

    async def _run(self, base_url: str, base_domain: str) -> None:
        if self._http_client is not None:
            await self._seed_and_crawl(self._http_client, base_url, base_domain)
            return

        async with httpx.AsyncClient(
            timeout=ROBOTS_FETCH_TIMEOUT_SECONDS, follow_redirects=True
        ) as client:
            await self._seed_and_crawl(client, base_url, base_domain)

    async def _seed_and_crawl(self, client: httpx.AsyncClient, base_url: str, base_domain: str) -> None:
        # 1. robots.txt
        if self.config.respect_robots_txt:
            self._robots_rules = await fetch_robots_txt(base_url, client, user_agent=settings.USER_AGENT)
            if self._robots_rules is not None:
                delay_ms = self._robots_rules.crawl_delay_ms(self.config.robots_user_agent)
                if delay_ms:
                    self._politeness.raise_min_delay(delay_ms)

        self._frontier = UrlFrontier(
            base_domain=base_domain,
            max_pages=self.config.max_pages,
            max_depth=self.config.max_depth,
            allow_external=self.config.allow_external,
            robots_filter=self._is_allowed,
        )

        # 2. Homepage at depth 0
        if not self._frontier.enqueue(base_url, 0):
            logger.warning(f"Homepage {base_url} was not accepted into the frontier")

        # 3. Sitemap seeds at fixed depth
        if self.config.use_sitemap and not self._aborted:
            resolver = SitemapResolver(client=client, user_agent=settings.USER_AGENT)
            sitemap = await resolver.resolve(
                base_url,
                self.config.max_pages,
                extra_locations=self._robots_rules.sitemaps if self._robots_rules else None,
            )
            for message in sitemap.errors:
                logger.warning(f"Sitemap: {message}")
            self._sitemap_errors.extend(sitemap.errors)

            urls = sitemap.urls
            if not self.config.allow_external:
                urls = filter_sitemap_urls(urls, domain=base_domain)
            seeded = sum(1 for u in urls if self._frontier.enqueue(u.loc, SITEMAP_SEED_DEPTH))
            logger.info(f"Seeded {seeded} URLs from sitemap")

        self.job.pages_found = self._frontier.pages_found
        self._emit_progress()

        # 4. Workers
        backend = self._backend
        if backend is None:
            backend = create_page_backend(self.config)
            await backend.start()
        try:
            adapter = PageFetchAdapter(
                backend=backend,
                base_domain=base_domain,
                user_agents=UserAgentRotator(
                    rotate=self.config.user_agent_rotation,
                    fixed_user_agent=self.config.user_agent,
                ),
                proxy_pool=create_proxy_pool(self.config.proxy_list) if self.config.proxy_rotation else None,
                navigation_timeout_ms=self.config.navigation_timeout_ms,
                network_idle_timeout_ms=self.config.network_idle_timeout_ms,
                allow_external=self.config.allow_external,
            )
            await self._run_workers(adapter)
        finally:
            if self._owns_backend:
                await backend.close()

    async def _run_workers(self, adapter: PageFetchAdapter) -> None:
        self._condition = asyncio.Condition()
        workers = [
            asyncio.create_task(self._worker(i, adapter), name=f"crawl-worker-{i}")
            for i in range(self.config.max_concurrency)
        ]
        try:
            await asyncio.gather(*workers)
        finally:
            for worker in workers:
                if not worker.done():
                    worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

    async def _worker(self, worker_id: int, adapter: PageFetchAdapter) -> None:
        """Pull entries until the frontier is drained or the job is aborted."""
        while True:
            async with self._condition:
                # Idle workers wait while others may still discover links
                await self._condition.wait_for(
                    lambda: self._frontier.has_pending or self._in_flight == 0 or self._aborted
                )
                if self._aborted or not self._frontier.has_pending:
                    self._condition.notify_all()
                    logger.debug(f"Worker {worker_id} exiting")
                    return
                entry = self._frontier.dequeue()
                self._in_flight += 1

            try:
                await self._process_entry(entry, adapter)
            finally:
                async with self._condition:
                    self._in_flight -= 1
                    self._condition.notify_all()

    async def _process_entry(self, entry: FrontierEntry, adapter: PageFetchAdapter) -> None:
        """Per-page pipeline: abort check, politeness, abort check, robots, fetch, record."""
        if self._aborted:
            return

        await self._politeness.wait_for_slot()

        if self._aborted:
            return

        if not self._is_allowed(entry.url):
            logger.debug(f"Skipping {entry.url} (disallowed by robots.txt)")
            return

        try:
            result = await adapter.fetch_page(entry.url, entry.depth, self.target_id, self.job.id)
        except FetchError as e:
            logger.warning(f"Failed to crawl {entry.url}: {e}")
            self._record_error(CrawlError(url=entry.url, message=str(e), code=e.code))
            return
        except Exception as e:
            logger.error(f"Unexpected error crawling {entry.url}: {e}", exc_info=True)
            self._record_error(CrawlError(url=entry.url, message=str(e) or type(e).__name__, code="unexpected"))
            return

        self._record_page(result)

        if entry.depth < self.config.max_depth and not self._aborted:
            self._enqueue_links(result.links, entry.depth + 1)

    # ------------------------------------------------------------------
    # State mutation
    # ------------------------------------------------------------------

    def _is_allowed(self, url: str) -> bool:
        if not self.config.respect_robots_txt or self._robots_rules is None:
            return True
        return is_allowed(url, self._robots_rules, self.config.robots_user_agent)

    def _enqueue_links(self, links: List[str], depth: int) -> None:
        for link in links:
            self._frontier.enqueue(link, depth)
        self.job.pages_found = self._frontier.pages_found

    def _record_page(self, result: PageFetchResult) -> None:
        self._pages.append(result.page)
        self._tech_context.merge(result.tech_context)
        self.job.pages_crawled = len(self._pages)
        logger.info(
            f"Crawled [{self.job.pages_crawled}/{self.job.pages_found}] "
            f"depth={result.page.depth} {result.page.url}"
        )
        self._emit_progress(result.page.url)

    def _record_error(self, error: CrawlError) -> None:
        self._errors.append(error)
        self.job.errors = list(self._errors)

    def _transition(self, status: CrawlJobStatus) -> bool:
        """Move the job to a new status unless it is already terminal."""
        if self.job.status.is_terminal:
            logger.debug(
                f"Ignoring transition {self.job.status.value} -> {status.value} for job {self.job.id}"
            )
            return False
        self.job.status = status
        return True

    def _finalize(self, failed: bool) -> None:
        if failed:
            status = CrawlJobStatus.FAILED
        elif self._aborted:
            status = CrawlJobStatus.CANCELLED
        else:
            status = CrawlJobStatus.COMPLETED

        self.job.pages_crawled = len(self._pages)
        if self._frontier is not None:
            self.job.pages_found = self._frontier.pages_found
        self.job.errors = list(self._errors)
        self.job.completed_at = datetime.now()
        if self._started_monotonic is not None:
            self.job.duration_ms = int((time.monotonic() - self._started_monotonic) * 1000)
        self._transition(status)

    def _emit_progress(self, current_url: Optional[str] = None) -> None:
        if self._on_progress is None:
            return

        found = self.job.pages_found
        progress = CrawlProgress(
            target_id=self.target_id,
            job_id=self.job.id,
            status=self.job.status,
            pages_found=found,
            pages_crawled=self.job.pages_crawled,
            current_url=current_url,
            progress_percent=round(self.job.pages_crawled / found * 100) if found else 0,
        )
        try:
            self._on_progress(progress)
        except Exception as e:
            logger.warning(f"Progress callback raised: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Result assembly
    # ------------------------------------------------------------------

    def _build_summary(self) -> CrawlSummary:
        response_times = [p.response_time_ms for p in self._pages if p.response_time_ms]
        average = sum(response_times) / len(response_times) if response_times else 0

        return CrawlSummary(
            total_pages=self.job.pages_found,
            successful_pages=len(self._pages),
            failed_pages=len(self._errors),
            total_links=sum(len(p.links) for p in self._pages),
            total_images=sum(len(p.images) for p in self._pages),
            average_response_time_ms=round(average),
            crawl_duration_ms=self.job.duration_ms or 0,
        )

    def _build_result(self, structure: SiteStructureAnalysis, tech_stack: List[TechStackItem]) -> CrawlResult:
        return CrawlResult(
            success=self.job.status == CrawlJobStatus.COMPLETED,
            job=self.get_job(),
            pages=list(self._pages),
            errors=list(self._errors),
            structure=structure,
            tech_stack=tech_stack,
            sitemap_errors=list(self._sitemap_errors),
            summary=self._build_summary(),
        )


async def crawl_site(
    target_id: str,
    domain: str,
    config: Optional[CrawlConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
    backend: Optional[PageBackend] = None,
) -> CrawlResult:
    """
    Create an orchestrator and run one crawl.

    Args:
        target_id: Identifier of the site being crawled
        domain: Domain or URL to crawl
        config: Crawl configuration
        on_progress: Optional progress callback
        backend: Optional started page backend

    Returns:
        CrawlResult
    """
    orchestrator = CrawlOrchestrator(target_id, config, backend=backend)
    return await orchestrator.crawl(domain, on_progress)
