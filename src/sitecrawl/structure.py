"""Site structure synthesis.

Turns the flat list of crawled pages into a folder/page tree and flags
common site sections (blog, documentation, product catalog). Pure and
deterministic: the same pages always produce the same tree.
"""

import logging
import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import urlparse

from sitecrawl.models import (
    CrawledPage,
    NodeType,
    SiteStructureAnalysis,
    SiteStructureNode,
)

logger = logging.getLogger(__name__)

_INDEX_SUFFIX = re.compile(r'/(index\.(html?|php|asp|aspx|jsp))$', re.IGNORECASE)

# Section patterns over the joined path corpus
PRODUCT_CATALOG_PATTERN = re.compile(r'/(products?|catalog|shop|store|items?|goods)/', re.IGNORECASE)
BLOG_PATTERN = re.compile(r'/(blog|news|articles?|posts?|journal|magazine)/', re.IGNORECASE)
DOCUMENTATION_PATTERN = re.compile(r'/(docs?|documentation|help|guide|wiki|faq|support)/', re.IGNORECASE)

# Section patterns over top-level folder names
PRODUCT_CATALOG_FOLDER = re.compile(r'^/(products?|catalog|shop|store)', re.IGNORECASE)
BLOG_FOLDER = re.compile(r'^/(blog|news|articles?)', re.IGNORECASE)
DOCUMENTATION_FOLDER = re.compile(r'^/(docs?|documentation|help)', re.IGNORECASE)


@dataclass
class StructureStats:
    """Summary statistics over a structure tree."""
    avg_depth: float
    avg_pages_per_folder: float
    largest_section: str
    deepest_path: str


def normalize_path(path: str) -> str:
    """Normalize a URL path for structure grouping.

    Strips the query string, collapses trailing slashes and default index
    documents. The root stays ``/``.
    """
    normalized = path.split('?', 1)[0].split('#', 1)[0] or '/'
    normalized = _INDEX_SUFFIX.sub('/', normalized)
    normalized = normalized.rstrip('/') or '/'
    if not normalized.startswith('/'):
        normalized = '/' + normalized
    return normalized


def get_path_depth(path: str) -> int:
    if path == '/':
        return 0
    return len([p for p in path.split('/') if p])


def get_parent_path(path: str) -> str:
    parts = [p for p in path.split('/') if p]
    if len(parts) <= 1:
        return '/'
    return '/' + '/'.join(parts[:-1])


def _page_path(page: CrawledPage) -> str:
    if page.normalized_path:
        return page.normalized_path
    return urlparse(page.url).path or '/'


class SiteStructureSynthesizer:
    """
    Builds a SiteStructureAnalysis from crawled pages.

    Construction is two-phase: a flat map from folder path to cumulative page
    count is filled first, then the tree is assembled by grouping folder
    paths under their parents.
    """

    def synthesize(self, pages: List[CrawledPage]) -> SiteStructureAnalysis:
        """
        Analyze site structure from crawled pages.

        Args:
            pages: Crawled pages of one job

        Returns:
            SiteStructureAnalysis with the tree and section flags
        """
        path_counts: Dict[str, int] = {}
        path_titles: Dict[str, str] = {}
        path_urls: Dict[str, str] = {}
        max_depth = 0

        for page in pages:
            path = normalize_path(_page_path(page))
            path_counts[path] = path_counts.get(path, 0) + 1
            if page.seo.title:
                path_titles[path] = page.seo.title
            path_urls[path] = page.url
            max_depth = max(max_depth, get_path_depth(path))

        folders = self._build_folder_counts(path_counts)
        root_node = self._build_tree(folders, path_titles, path_urls, len(pages))

        top_level_folders = [
            path for path, _ in sorted(
                ((p, c) for p, c in folders.items() if get_path_depth(p) == 1),
                key=lambda item: (-item[1], item[0]),
            )
        ]

        all_paths = ' '.join(path_counts.keys())

        def has_section(corpus_pattern: re.Pattern, folder_pattern: re.Pattern) -> bool:
            return bool(corpus_pattern.search(all_paths)) or any(
                folder_pattern.match(f) for f in top_level_folders
            )

        analysis = SiteStructureAnalysis(
            total_pages=len(pages),
            max_depth=max_depth,
            root_node=root_node,
            top_level_folders=top_level_folders,
            flat_structure=max_depth <= 2,
            has_product_catalog=has_section(PRODUCT_CATALOG_PATTERN, PRODUCT_CATALOG_FOLDER),
            has_blog=has_section(BLOG_PATTERN, BLOG_FOLDER),
            has_documentation=has_section(DOCUMENTATION_PATTERN, DOCUMENTATION_FOLDER),
        )
        logger.debug(
            f"Synthesized structure: {analysis.total_pages} pages, "
            f"max depth {analysis.max_depth}, {len(top_level_folders)} top-level folders"
        )
        return analysis

    @staticmethod
    def _build_folder_counts(path_counts: Dict[str, int]) -> Dict[str, int]:
        """Add each path's page count to itself and every ancestor folder."""
        folders: Dict[str, int] = {}
        for path, count in path_counts.items():
            parts = [p for p in path.split('/') if p]
            for i in range(len(parts)):
                folder_path = '/' + '/'.join(parts[:i + 1])
                folders[folder_path] = folders.get(folder_path, 0) + count
        return folders

    @staticmethod
    def _build_tree(
        folders: Dict[str, int],
        path_titles: Dict[str, str],
        path_urls: Dict[str, str],
        total_pages: int,
    ) -> SiteStructureNode:
        root = SiteStructureNode(
            path='/',
            depth=0,
            page_count=total_pages,
            node_type=NodeType.ROOT,
            title=path_titles.get('/'),
            page_url=path_urls.get('/'),
        )

        paths_by_parent: Dict[str, List[str]] = defaultdict(list)
        for path in folders:
            paths_by_parent[get_parent_path(path)].append(path)

        # Iterative top-down attachment
        stack = [root]
        while stack:
            node = stack.pop()
            for child_path in paths_by_parent.get(node.path, []):
                child = SiteStructureNode(
                    path=child_path,
                    parent_path=node.path,
                    depth=get_path_depth(child_path),
                    page_count=folders[child_path],
                    node_type=NodeType.PAGE,
                    title=path_titles.get(child_path),
                    page_url=path_urls.get(child_path),
                )
                node.children.append(child)
                stack.append(child)

        # Bottom-up finalization: classify and sort children
        for node in flatten_tree(root)[::-1]:
            node.child_count = len(node.children)
            if node.node_type != NodeType.ROOT and node.child_count > 0:
                node.node_type = NodeType.FOLDER
            node.children.sort(key=lambda c: (-c.page_count, c.path))

        return root


def analyze_site_structure(pages: List[CrawledPage]) -> SiteStructureAnalysis:
    """Convenience wrapper around SiteStructureSynthesizer.synthesize."""
    return SiteStructureSynthesizer().synthesize(pages)


def flatten_tree(node: SiteStructureNode) -> List[SiteStructureNode]:
    """Flatten a tree into a pre-order list."""
    result: List[SiteStructureNode] = []
    stack = [node]
    while stack:
        current = stack.pop()
        result.append(current)
        stack.extend(reversed(current.children))
    return result


def get_paths_at_depth(node: SiteStructureNode, depth: int) -> List[SiteStructureNode]:
    return [n for n in flatten_tree(node) if n.depth == depth]


def find_node_by_path(root: SiteStructureNode, path: str) -> Optional[SiteStructureNode]:
    for node in flatten_tree(root):
        if node.path == path:
            return node
    return None


def get_structure_stats(analysis: SiteStructureAnalysis) -> StructureStats:
    """
    Compute summary statistics for a structure analysis.

    Args:
        analysis: Output of synthesize

    Returns:
        StructureStats with averages rounded to one decimal
    """
    all_nodes = flatten_tree(analysis.root_node)
    folders = [n for n in all_nodes if n.node_type in (NodeType.FOLDER, NodeType.ROOT)]

    avg_depth = sum(n.depth for n in all_nodes) / len(all_nodes)
    avg_pages_per_folder = sum(f.page_count for f in folders) / len(folders)
    deepest = max(all_nodes, key=lambda n: n.depth)

    return StructureStats(
        avg_depth=round(avg_depth, 1),
        avg_pages_per_folder=round(avg_pages_per_folder, 1),
        largest_section=analysis.top_level_folders[0] if analysis.top_level_folders else '/',
        deepest_path=deepest.path,
    )


def generate_structure_summary(analysis: SiteStructureAnalysis) -> str:
    """Plain-language summary of a structure analysis."""
    parts = [f"Total {analysis.total_pages} pages with max depth of {analysis.max_depth} levels."]

    if analysis.flat_structure:
        parts.append("The site has a flat structure, which is good for SEO.")
    else:
        parts.append("The site has a deep hierarchical structure.")

    if analysis.top_level_folders:
        parts.append(f"Main sections: {', '.join(analysis.top_level_folders[:5])}.")

    features = []
    if analysis.has_blog:
        features.append("blog/news section")
    if analysis.has_product_catalog:
        features.append("product catalog")
    if analysis.has_documentation:
        features.append("documentation")
    if features:
        parts.append(f"Detected: {', '.join(features)}.")

    return ' '.join(parts)
