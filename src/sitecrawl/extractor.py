"""HTML extraction into page records.

Pure functions over an HTML string; no network access.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from sitecrawl.constants import MAX_TEXT_CONTENT_LENGTH
from sitecrawl.frontier import normalize_url
from sitecrawl.models import (
    CrawledPage,
    HeadingsData,
    ImageData,
    LinkData,
    SEOData,
)

logger = logging.getLogger(__name__)

# Elements that never hold page copy
NON_CONTENT_TAGS = ['script', 'style', 'noscript', 'iframe', 'svg', 'header', 'footer', 'nav', 'aside', 'form']

# Meta tags that identify the software behind a page
FINGERPRINT_META_NAMES = ('generator', 'application-name', 'framework')

MAX_LINK_TEXT_LENGTH = 200


@dataclass
class ExtractionResult:
    """Everything extracted from a single HTML document."""

    seo: SEOData
    headings: HeadingsData
    images: List[ImageData] = field(default_factory=list)
    links: List[LinkData] = field(default_factory=list)
    text_content: str = ""
    word_count: int = 0
    meta: Dict[str, str] = field(default_factory=dict)
    scripts: List[str] = field(default_factory=list)


def _attr(tag, name: str) -> Optional[str]:
    if tag is None:
        return None
    value = tag.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _meta_content(soup: BeautifulSoup, **attrs) -> Optional[str]:
    return _attr(soup.find('meta', attrs=attrs), 'content')


def _to_int(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value.strip().rstrip('px')) or None
    except ValueError:
        return None


def resolve_url(href: str, base_url: str) -> str:
    """Resolve a relative URL against the page URL."""
    try:
        return urljoin(base_url, href)
    except ValueError:
        return href


def extract_schema_types(soup: BeautifulSoup) -> List[str]:
    """Collect Schema.org @type values from JSON-LD blocks, in first-seen order."""
    types: List[str] = []

    def add(value) -> None:
        if isinstance(value, list):
            for item in value:
                add(item)
        elif isinstance(value, str) and value not in types:
            types.append(value)

    for script in soup.find_all('script', attrs={'type': 'application/ld+json'}):
        try:
            data = json.loads(script.string or '{}')
        except (json.JSONDecodeError, TypeError):
            continue

        items = data if isinstance(data, list) else [data]
        for item in items:
            if not isinstance(item, dict):
                continue
            add(item.get('@type'))
            for node in item.get('@graph') or []:
                if isinstance(node, dict):
                    add(node.get('@type'))

    return types


def extract_seo_data(soup: BeautifulSoup) -> SEOData:
    title_tag = soup.find('title')
    title = title_tag.get_text(strip=True) if title_tag else None

    return SEOData(
        title=title or None,
        meta_description=_meta_content(soup, name='description'),
        meta_keywords=_meta_content(soup, name='keywords'),
        canonical_url=_attr(soup.find('link', rel='canonical'), 'href'),
        robots=_meta_content(soup, name='robots'),
        og_title=_meta_content(soup, property='og:title'),
        og_description=_meta_content(soup, property='og:description'),
        og_image=_meta_content(soup, property='og:image'),
        og_type=_meta_content(soup, property='og:type'),
        og_url=_meta_content(soup, property='og:url'),
        twitter_card=_meta_content(soup, name='twitter:card'),
        twitter_title=_meta_content(soup, name='twitter:title'),
        twitter_description=_meta_content(soup, name='twitter:description'),
        twitter_image=_meta_content(soup, name='twitter:image'),
        schema_types=extract_schema_types(soup),
        has_structured_data=soup.find('script', attrs={'type': 'application/ld+json'}) is not None,
    )


def extract_headings(soup: BeautifulSoup) -> HeadingsData:
    headings = HeadingsData()
    for level in range(1, 7):
        bucket = getattr(headings, f'h{level}')
        for tag in soup.find_all(f'h{level}'):
            text = tag.get_text(" ", strip=True)
            if text:
                bucket.append(text)
    return headings


def extract_images(soup: BeautifulSoup, base_url: str) -> List[ImageData]:
    images: List[ImageData] = []
    seen = set()

    for img in soup.find_all('img'):
        src = _attr(img, 'src') or _attr(img, 'data-src') or _attr(img, 'data-lazy-src')
        if not src:
            continue
        resolved = resolve_url(src, base_url)
        seen.add(resolved)
        images.append(ImageData(
            src=resolved,
            alt=_attr(img, 'alt'),
            title=_attr(img, 'title'),
            width=_to_int(_attr(img, 'width')),
            height=_to_int(_attr(img, 'height')),
            is_lazy_loaded=bool(
                _attr(img, 'loading') == 'lazy'
                or _attr(img, 'data-src')
                or _attr(img, 'data-lazy-src')
            ),
        ))

    # <picture><source srcset> without a matching <img>
    for source in soup.select('picture source[srcset]'):
        srcset = _attr(source, 'srcset')
        if not srcset:
            continue
        first = srcset.split(',')[0].strip().split(' ')[0]
        if not first:
            continue
        resolved = resolve_url(first, base_url)
        if resolved not in seen:
            seen.add(resolved)
            images.append(ImageData(src=resolved))

    return images


def extract_links(soup: BeautifulSoup, base_url: str) -> List[LinkData]:
    links: List[LinkData] = []
    base_host = (urlparse(base_url).hostname or '').lower()

    for anchor in soup.find_all('a', href=True):
        href = anchor['href'].strip()
        if not href or href.startswith(('#', 'javascript:', 'mailto:', 'tel:')):
            continue

        resolved = resolve_url(href, base_url)
        rel = _attr(anchor, 'rel') or ''
        try:
            link_host = (urlparse(resolved).hostname or '').lower()
        except ValueError:
            link_host = ''

        links.append(LinkData(
            href=resolved,
            text=anchor.get_text(" ", strip=True)[:MAX_LINK_TEXT_LENGTH],
            title=_attr(anchor, 'title'),
            rel=rel or None,
            is_external=bool(link_host) and link_host != base_host,
            is_nofollow='nofollow' in rel.lower().split(),
        ))

    return links


def extract_text_content(soup: BeautifulSoup) -> str:
    """Visible page copy with navigation chrome removed, whitespace collapsed."""
    body = soup.body or soup
    clone = BeautifulSoup(str(body), 'html.parser')
    for tag in clone.find_all(NON_CONTENT_TAGS):
        tag.decompose()
    return " ".join(clone.get_text(" ").split())


def extract_meta(soup: BeautifulSoup) -> Dict[str, str]:
    """Fingerprinting meta tags such as generator."""
    meta: Dict[str, str] = {}
    for name in FINGERPRINT_META_NAMES:
        content = _meta_content(soup, name=name)
        if content:
            meta[name] = content
    return meta


def extract_script_sources(soup: BeautifulSoup, base_url: str) -> List[str]:
    return [resolve_url(s['src'], base_url) for s in soup.find_all('script', src=True) if s['src'].strip()]


def count_words(text: str) -> int:
    """Count whitespace-separated words."""
    if not text:
        return 0
    return len(text.split())


def extract_from_html(html: str, url: str) -> ExtractionResult:
    """
    Extract SEO metadata, headings, images, links and text from HTML.

    Args:
        html: Rendered page HTML
        url: Final page URL, used to resolve relative references

    Returns:
        ExtractionResult
    """
    soup = BeautifulSoup(html or '', 'html.parser')
    text_content = extract_text_content(soup)

    return ExtractionResult(
        seo=extract_seo_data(soup),
        headings=extract_headings(soup),
        images=extract_images(soup, url),
        links=extract_links(soup, url),
        text_content=text_content,
        word_count=count_words(text_content),
        meta=extract_meta(soup),
        scripts=extract_script_sources(soup, url),
    )


def url_path(url: str) -> str:
    """Path component of a normalized URL, ``/`` when empty."""
    return urlparse(normalize_url(url)).path or '/'


def create_crawled_page(
    target_id: str,
    job_id: str,
    url: str,
    depth: int,
    extraction: ExtractionResult,
    status_code: int = 200,
    response_time_ms: Optional[int] = None,
    content_type: Optional[str] = 'text/html',
    page_id: Optional[str] = None,
) -> CrawledPage:
    """
    Build a CrawledPage from an extraction result.

    Args:
        target_id: Crawl target identifier
        job_id: Owning crawl job
        url: Page URL
        depth: Link distance from the homepage
        extraction: Output of extract_from_html
        status_code: HTTP status of the navigation
        response_time_ms: Time from dispatch to extracted page
        content_type: Response content type
        page_id: Optional fixed identifier

    Returns:
        CrawledPage with text content bounded to MAX_TEXT_CONTENT_LENGTH
    """
    return CrawledPage(
        id=page_id or str(uuid.uuid4()),
        target_id=target_id,
        job_id=job_id,
        url=url,
        normalized_path=url_path(url),
        depth=depth,
        status_code=status_code,
        content_type=content_type,
        seo=extraction.seo,
        headings=extraction.headings,
        images=extraction.images,
        links=extraction.links,
        word_count=extraction.word_count,
        text_content=extraction.text_content[:MAX_TEXT_CONTENT_LENGTH],
        response_time_ms=response_time_ms,
    )
