# app.py - Regional electricity price scraper
# Command line entry point: scrape city pages into monthly price records

import argparse
import signal
import sys
from typing import List, Optional

# Import our configuration
import config

from core.configuration import ScraperConfig
from core.errors import FatalConfigurationError, PersistenceFailure
from controllers.scrape_coordinator import ScrapeCoordinator
from processors.geographic_completion import GeographicCompleter
from utils.database_manager import DatabaseManager
from utils.file_utils import load_targets
from utils.logging import get_logger, setup_logging

logger = get_logger("app")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='strompreis-scraper',
        description='Scrape local default provider and green tariff electricity prices per postal code.',
    )
    parser.add_argument('--database-url', help='SQLAlchemy database URL (default: DATABASE_URL)')
    parser.add_argument('--period', help='Month to write records for, YYYY-MM (default: current month)')
    parser.add_argument('--log-level', default=config.LOG_LEVEL, help='Log level')
    parser.add_argument('--log-format', default=config.LOG_FORMAT, choices=['text', 'json'], help='Log output format')

    subparsers = parser.add_subparsers(dest='command', required=True)

    run = subparsers.add_parser('run', help='Scrape all uncovered postal codes')
    run.add_argument('csv_path', nargs='?', default=config.CSV_PATH, help='Postal code reference CSV')
    run.add_argument('--delimiter', default=config.CSV_DELIMITER, help='CSV field delimiter')
    run.add_argument('--limit', type=int, help='Maximum number of targets to scrape')
    run.add_argument('--delay', type=float, help='Base delay between requests in seconds')
    run.add_argument('--workers', type=int, help='Number of concurrent workers')
    run.add_argument('--proxies', nargs='*', help='Proxy URLs to rotate through (enables proxy rotation)')
    run.add_argument('--proxy-file', help='File with one proxy URL per line (enables proxy rotation)')
    run.add_argument('--tor', action='store_true', help='Add the local Tor SOCKS proxy to the rotation')
    run.add_argument('--fill-missing', action='store_true',
                     help='Fill uncovered postal codes from the nearest scraped neighbour afterwards')

    fill = subparsers.add_parser('fill-missing', help='Only run geographic completion for a month')
    fill.add_argument('csv_path', nargs='?', default=config.CSV_PATH, help='Postal code reference CSV')
    fill.add_argument('--delimiter', default=config.CSV_DELIMITER, help='CSV field delimiter')
    fill.add_argument('--max-distance', type=float, help='Maximum neighbour distance in km')

    return parser


def build_config(args: argparse.Namespace) -> ScraperConfig:
    overrides = dict(
        database_url=args.database_url,
        data_month=args.period,
    )
    if args.command == 'run':
        proxy_enabled = bool(args.proxies or args.proxy_file or args.tor) or None
        overrides.update(
            max_targets=args.limit,
            request_delay=args.delay,
            max_workers=args.workers,
            proxies=tuple(args.proxies) if args.proxies else None,
            proxy_file=args.proxy_file,
            tor_enabled=True if args.tor else None,
            proxy_enabled=proxy_enabled,
        )
    else:
        overrides['max_fallback_distance_km'] = args.max_distance
    return ScraperConfig.from_env(**overrides)


def run_scrape(scraper_config: ScraperConfig, args: argparse.Namespace) -> int:
    targets = load_targets(args.csv_path, args.delimiter)
    database = DatabaseManager(scraper_config.database_url)
    coordinator = ScrapeCoordinator(scraper_config, database)

    # Ctrl+C / SIGTERM finish the current target and end the run cleanly
    def handle_signal(signum, frame):
        coordinator.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        summary = coordinator.run(targets)
        logger.info("scrape_summary", **{k: v for k, v in summary.items() if not isinstance(v, dict)})

        if args.fill_missing and summary['status'] == 'completed':
            report = GeographicCompleter.from_config(scraper_config, database).complete(
                targets, scraper_config.period)
            logger.info("geographic_completion", **report.to_dict())
    finally:
        database.dispose()

    return 0 if summary['status'] == 'completed' else 1


def run_fill_missing(scraper_config: ScraperConfig, args: argparse.Namespace) -> int:
    targets = load_targets(args.csv_path, args.delimiter)
    database = DatabaseManager(scraper_config.database_url)
    try:
        database.check_connection()
        report = GeographicCompleter.from_config(scraper_config, database).complete(
            targets, scraper_config.period)
        logger.info("geographic_completion", **report.to_dict())
    finally:
        database.dispose()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_format, config.ENVIRONMENT)

    try:
        scraper_config = build_config(args)
        logger.info("starting", app=config.APP_NAME, version=config.APP_VERSION,
                    command=args.command, period=scraper_config.period.isoformat())
        if args.command == 'run':
            return run_scrape(scraper_config, args)
        return run_fill_missing(scraper_config, args)
    except FatalConfigurationError as e:
        logger.error("configuration_error", error=str(e))
        return 2
    except PersistenceFailure as e:
        logger.error("database_error", error=str(e))
        return 3
    except FileNotFoundError as e:
        logger.error("input_missing", error=str(e))
        return 2


if __name__ == "__main__":
    sys.exit(main())
