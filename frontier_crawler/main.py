"""
Command line entry point for the web crawler.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from . import __version__
from .crawler.scheduler import CrawlerScheduler
from .crawler.url_frontier import FrontierCorruptedError
from .utils.config import PATTERN_SYNTAXES, RATE_LIMITER_KINDS, Config, ConfigError, load_config
from .utils.logger import log_system_info, setup_logging
from .utils.monitoring import CrawlerMonitor


EXIT_OK = 0
EXIT_ERROR = 1
EXIT_FATAL = 2


class CrawlerApp:
    """Main application class for the web crawler."""

    def __init__(self):
        self.scheduler: Optional[CrawlerScheduler] = None
        self.logger = logging.getLogger(__name__)
        self._shutdown_event: Optional[asyncio.Event] = None

    def setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
            self._shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def run(self, config: Config, start_url: str, max_pages: Optional[int] = None,
                  max_duration: Optional[float] = None) -> int:
        """Run the web crawler."""
        self._shutdown_event = asyncio.Event()
        self.setup_signal_handlers()

        try:
            self.logger.info("=== WEB CRAWLER STARTING ===")
            self.logger.info(f"Start URL: {start_url}")
            self.logger.info(f"Allow patterns: {list(config.crawler.allow_urls)}")
            self.logger.info(f"Disallow patterns: {list(config.crawler.disallow_urls)}")
            self.logger.info(f"Rate limit: {config.crawler.rate_limit} pages/s, "
                             f"workers: {config.crawler.thread_count}")
            log_system_info()

            monitor = CrawlerMonitor(
                enable_server=config.monitoring.metrics_enabled,
                port=config.monitoring.prometheus_port,
            )
            monitor.start_server()

            self.scheduler = CrawlerScheduler(config, start_url, monitor=monitor)

            crawl_task = asyncio.create_task(
                self.scheduler.start_crawling(max_pages, max_duration)
            )
            shutdown_task = asyncio.create_task(self._shutdown_event.wait())

            # Wait for either crawling to complete or shutdown signal
            done, _ = await asyncio.wait(
                [crawl_task, shutdown_task],
                return_when=asyncio.FIRST_COMPLETED
            )

            if shutdown_task in done:
                self.logger.info("Shutdown requested, stopping crawler...")
                await self.scheduler.stop_crawling()
            else:
                shutdown_task.cancel()

            await crawl_task

        except FrontierCorruptedError as e:
            self.logger.critical(f"Fatal frontier error in {e.section}(): {e.detail}", exc_info=True)
            return EXIT_FATAL

        except Exception as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return EXIT_ERROR

        finally:
            if self.scheduler:
                await self.scheduler.close()
            self.logger.info("=== WEB CRAWLER FINISHED ===")

        return EXIT_OK


def _split_patterns(values: Optional[List[str]]) -> Optional[List[str]]:
    """Accept both repeated arguments and a single space separated argument."""
    if values is None:
        return None
    return [pattern for value in values for pattern in value.split()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="frontier-crawler",
        description="Rate-limited web crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  frontier-crawler -s https://example.com -a 'https://example.com/*'
  frontier-crawler -s https://example.com -a 'https://example.com/*' -d '*/private/*' -r 5 -t 8
  frontier-crawler -s https://example.com --config crawler.yaml --max-pages 1000
        """
    )

    parser.add_argument(
        '-s', '--start-url',
        required=True,
        help='The crawler starts here, it will then branch out to all allowed URLs on that page'
    )
    parser.add_argument(
        '-r', '--rate-limit',
        type=int,
        help='The maximum number of pages allowed to be crawled per second (default: 15)'
    )
    parser.add_argument(
        '-a', '--allow-urls',
        nargs='+',
        metavar='PATTERN',
        help='URL patterns that are allowed to be crawled (at least one is required)'
    )
    parser.add_argument(
        '-d', '--disallow-urls',
        nargs='*',
        metavar='PATTERN',
        help="URL patterns that aren't allowed to be crawled, this takes priority over allowed"
    )
    parser.add_argument(
        '-t', '--thread-count',
        type=int,
        help='The number of workers to run, more workers = more parallelisation (default: 20)'
    )
    parser.add_argument(
        '--config',
        help='Optional YAML configuration file; command line flags take precedence'
    )
    parser.add_argument(
        '--pattern-syntax',
        choices=PATTERN_SYNTAXES,
        help='How allow/disallow patterns are matched (default: glob)'
    )
    parser.add_argument(
        '--rate-limiter',
        choices=RATE_LIMITER_KINDS,
        help='Rate limiting algorithm (default: interval)'
    )
    parser.add_argument(
        '--max-pages',
        type=int,
        help='Maximum number of pages to crawl'
    )
    parser.add_argument(
        '--max-duration',
        type=float,
        help='Maximum crawl duration in seconds'
    )
    parser.add_argument('--log-level', help='Log level (default: INFO)')
    parser.add_argument('--log-file', help='Also write logs to this file')
    parser.add_argument(
        '--json-logs',
        action='store_true',
        default=None,
        help='Emit logs as JSON lines'
    )
    parser.add_argument(
        '--metrics-port',
        type=int,
        help='Expose Prometheus metrics on this port'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'frontier-crawler {__version__}'
    )
    return parser


def config_overrides(args: argparse.Namespace) -> dict:
    """Map parsed arguments onto configuration sections."""
    return {
        'crawler': {
            'rate_limit': args.rate_limit,
            'allow_urls': _split_patterns(args.allow_urls),
            'disallow_urls': _split_patterns(args.disallow_urls),
            'thread_count': args.thread_count,
            'pattern_syntax': args.pattern_syntax,
            'rate_limiter': args.rate_limiter,
        },
        'logging': {
            'level': args.log_level,
            'file': args.log_file,
            'json': args.json_logs,
        },
        'monitoring': {
            'metrics_enabled': True if args.metrics_port is not None else None,
            'prometheus_port': args.metrics_port,
        },
    }


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    for flag, value in (('--max-pages', args.max_pages), ('--max-duration', args.max_duration)):
        if value is not None and value <= 0:
            print(f"error: {flag} must be positive", file=sys.stderr)
            return EXIT_ERROR

    try:
        config = load_config(args.config, config_overrides(args))
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ERROR

    setup_logging(config.logging)

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(
            config,
            start_url=args.start_url,
            max_pages=args.max_pages,
            max_duration=args.max_duration,
        ))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return EXIT_ERROR


if __name__ == '__main__':
    sys.exit(main())
