"""Command-line interface for the site crawler."""

import asyncio
import json
import sys
from dataclasses import asdict
from typing import List, Optional

from pydantic import ValidationError

from sitecrawl.config import CrawlConfig, settings
from sitecrawl.frontier import extract_domain
from sitecrawl.logging_config import setup_logging
from sitecrawl.models import CrawlProgress, CrawlResult
from sitecrawl.orchestrator import CrawlOrchestrator
from sitecrawl.structure import generate_structure_summary
from sitecrawl.tech_detector import get_category_label, group_by_category


def build_config(args) -> CrawlConfig:
    """Merge CLI flags over the file or environment configuration.

    Args:
        args: Parsed arguments of the crawl command

    Returns:
        Validated CrawlConfig
    """
    base = CrawlConfig.from_file(args.config) if args.config else CrawlConfig.from_env()
    data = base.model_dump()

    if args.max_pages is not None:
        data["max_pages"] = args.max_pages
    if args.max_depth is not None:
        data["max_depth"] = args.max_depth
    if args.concurrency is not None:
        data["max_concurrency"] = args.concurrency
    if args.no_sitemap:
        data["use_sitemap"] = False
    if args.ignore_robots:
        data["respect_robots_txt"] = False
    if args.http_only:
        data["use_headless_browser"] = False

    return CrawlConfig(**data)


def _print_progress(progress: CrawlProgress) -> None:
    current = f" {progress.current_url}" if progress.current_url else ""
    print(
        f"[{progress.progress_percent:3d}%] {progress.pages_crawled}/{progress.pages_found}{current}",
        file=sys.stderr,
    )


def print_result(result: CrawlResult) -> None:
    """Print a crawl result in a human readable form.

    Args:
        result: Result of a finished crawl
    """
    job = result.job
    summary = result.summary

    print(f"\n{'=' * 60}")
    print(f"Crawl {job.id} for {job.target_id}: {job.status.value}")
    print(f"{'=' * 60}")
    print(f"\nPages crawled: {summary.successful_pages}/{summary.total_pages}")
    print(f"Failed pages: {summary.failed_pages}")
    print(f"Links found: {summary.total_links}")
    print(f"Images found: {summary.total_images}")
    print(f"Average response time: {summary.average_response_time_ms}ms")
    print(f"Duration: {summary.crawl_duration_ms}ms")

    print(f"\nStructure:")
    print(f"  {generate_structure_summary(result.structure)}")

    if result.tech_stack:
        print(f"\nTechnology:")
        for category, items in group_by_category(result.tech_stack).items():
            names = ', '.join(
                f"{item.name} {item.version}" if item.version else item.name for item in items
            )
            print(f"  • {get_category_label(category)}: {names}")

    if result.sitemap_errors:
        print(f"\nSitemap issues:")
        for message in result.sitemap_errors:
            print(f"  • {message}")

    if result.errors:
        print(f"\nErrors:")
        for error in result.errors[:20]:
            print(f"  • {error.url}: {error.message}")
        if len(result.errors) > 20:
            print(f"  ... and {len(result.errors) - 20} more")

    print(f"\n{'=' * 60}\n")


def crawl_command(args) -> int:
    """Crawl one site and print or write the result."""
    try:
        config = build_config(args)
    except (ValidationError, ValueError, OSError) as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 2

    target_id = args.target_id or extract_domain(args.domain)
    orchestrator = CrawlOrchestrator(target_id, config)
    on_progress = _print_progress if args.progress else None

    try:
        result = asyncio.run(orchestrator.crawl(args.domain, on_progress))
    except KeyboardInterrupt:
        orchestrator.abort()
        print("\nCrawl interrupted by user.", file=sys.stderr)
        return 130

    if args.output == "json":
        output = json.dumps(asdict(result), indent=2, default=str)  # default=str for datetimes
        if args.output_file:
            with open(args.output_file, "w") as f:
                f.write(output)
            print(f"\nResults written to {args.output_file}")
        else:
            print(output)
    else:
        print_result(result)

    return 0 if result.success else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="sitecrawl - Polite crawler that maps site structure and technology"
    )

    # Global flags (before subcommands)
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.LOG_LEVEL.upper(),
        help="Set logging verbosity (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to file in addition to console",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    crawl_parser = subparsers.add_parser(
        "crawl", help="Crawl a site and report its structure."
    )
    crawl_parser.add_argument(
        "domain", help="Domain or URL to crawl (e.g., example.com)"
    )
    crawl_parser.add_argument(
        "--target-id",
        help="Identifier recorded on the job (default: the domain)",
    )
    crawl_parser.add_argument(
        "--config",
        help="JSON file with crawl configuration (default: SITECRAWL_* environment)",
    )
    crawl_parser.add_argument(
        "--max-pages",
        type=int,
        help="Maximum pages to crawl",
    )
    crawl_parser.add_argument(
        "--max-depth",
        type=int,
        help="Maximum link depth from the homepage",
    )
    crawl_parser.add_argument(
        "--concurrency",
        type=int,
        help="Number of concurrent page workers",
    )
    crawl_parser.add_argument(
        "--no-sitemap",
        action="store_true",
        help="Do not seed the crawl from the XML sitemap",
    )
    crawl_parser.add_argument(
        "--ignore-robots",
        action="store_true",
        help="Do not fetch or honor robots.txt",
    )
    crawl_parser.add_argument(
        "--http-only",
        action="store_true",
        help="Fetch pages over plain HTTP instead of a headless browser",
    )
    crawl_parser.add_argument(
        "--progress",
        action="store_true",
        help="Print progress events to stderr",
    )
    crawl_parser.add_argument(
        "--output",
        "-o",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )
    crawl_parser.add_argument(
        "--output-file",
        "-f",
        help="Write output to file (only for json format)",
    )
    crawl_parser.set_defaults(func=crawl_command)

    args = parser.parse_args(argv)

    # Configure logging based on flags
    setup_logging(
        level=args.log_level,
        log_file=getattr(args, 'log_file', None),
    )

    if hasattr(args, "func"):
        return args.func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
