"""CLI job that runs one supervised worker search and reports its progress."""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from scraper_host.core.config_locator import open_context
from scraper_host.core.service import ScraperService
from scraper_host.errors import ConfigMissing, NoWritableLocation, SpawnFailure, WorkerExitFailure
from scraper_host.models import (
    OUTPUT_FORMATS,
    Error,
    MapsFound,
    Raw,
    ScrapingComplete,
    ScrapingProgressEvent,
    ScrapingStarted,
    SearchRequest,
    StatusEvent,
)

logger = logging.getLogger(__name__)


def log_event(event: StatusEvent) -> None:
    if isinstance(event, ScrapingProgressEvent):
        label = f" - {event.label}" if event.label else ""
        logger.info("Scraping business %d of %d (%.0f%%)%s", event.current, event.total, event.percentage, label)
    elif isinstance(event, MapsFound):
        logger.info("Found %d businesses - starting enhancement", event.count)
    elif isinstance(event, ScrapingStarted):
        logger.info("Enhancing %d businesses", event.total)
    elif isinstance(event, ScrapingComplete):
        logger.info("Successfully enhanced %d business%s", event.enhanced, "" if event.enhanced == 1 else "es")
    elif isinstance(event, Error):
        logger.error("Worker reported: %s", event.message)
    elif isinstance(event, Raw):
        logger.info("%s", event.message)
    else:
        logger.info("Stage: %s", event.kind)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run one business search through the worker")
    parser.add_argument("-k", "--keyword", required=True, help="Business keyword, e.g. 'pizza'")
    parser.add_argument("-l", "--location", required=True, help="Location, e.g. 'Austin, TX'")
    parser.add_argument("-r", "--max-results", dest="max_results", type=int, default=20, help="Result cap")
    parser.add_argument("-f", "--format", dest="output_format", choices=OUTPUT_FORMATS, default="csv")
    parser.add_argument("-o", "--output-dir", dest="output_directory", type=Path, help="Directory for the result file")
    parser.add_argument(
        "--no-web-scraping",
        dest="enable_web_scraping",
        action="store_false",
        help="Skip website enrichment",
    )
    return parser


def run_search_job(request: SearchRequest, service: ScraperService) -> int:
    outcome = service.run_search(request, on_event=log_event)
    outcome.raise_for_status()

    if outcome.table is None:
        logger.warning("Search completed but no business data could be loaded.")
    else:
        logger.info("Loaded %d businesses", len(outcome.table))
    logger.info("Results saved to %s", outcome.output_file_path)
    return len(outcome.table or [])


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.max_results <= 0:
        parser.error("--max-results must be positive")

    request = SearchRequest(
        keyword=args.keyword,
        location=args.location,
        max_results=args.max_results,
        output_format=args.output_format,
        output_directory=args.output_directory,
        enable_web_scraping=args.enable_web_scraping,
    )

    with open_context() as context:
        service = ScraperService(context)
        try:
            run_search_job(request, service)
        except (ConfigMissing, NoWritableLocation) as exc:
            logger.error("Configuration error: %s", exc.user_message())
            raise SystemExit(2) from exc
        except SpawnFailure as exc:
            logger.error("%s", exc)
            raise SystemExit(1) from exc
        except WorkerExitFailure as exc:
            logger.error("Search failed (exit=%s): %s", exc.exit_code, exc)
            raise SystemExit(1) from exc


if __name__ == "__main__":
    main(sys.argv[1:])
