"""
Command Line Interface for inventory scans and thumbnail cache maintenance.
"""

import argparse
import json
import logging
from typing import List, Optional

from .cache_config import CacheConfig
from .cache_metadata import CacheMetadataStore
from .changeset import Changeset
from .evictor import Evictor
from .generation_progress import GenerationProgress
from .inventory import Inventory, InventoryVersionError
from .picture_record import DataSource
from .pregenerator import IdlePregenerator
from .reporter import Reporter
from .scan_messages import CompletionReport, ErrorReport, ProgressReport, ScanRequest
from .scan_progress import ScanProgress
from .scan_worker import ScanWorker
from .server_inventory import ServerInventory
from .thumbnail_cache import ThumbnailCache


def setup_logging(verbose: bool) -> logging.Logger:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('PIL').setLevel(logging.WARNING)
    logging.getLogger('watchdog').setLevel(logging.WARNING)

    return logging.getLogger('gallery')


def get_cache_config(args: argparse.Namespace, logger: logging.Logger) -> CacheConfig:
    """
    Get cache configuration from environment and CLI overrides.

    Raises:
        ValueError: If the configuration is invalid
    """
    config = CacheConfig.from_env()

    if getattr(args, 'cache_dir', None):
        config.cache_dir = args.cache_dir
    if getattr(args, 'metadata', None):
        config.metadata_path = args.metadata
    if getattr(args, 'server_inventory', None):
        config.inventory_path = args.server_inventory
    if getattr(args, 'max_bytes', None):
        config.max_bytes = args.max_bytes

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(error)
        raise ValueError("Cache configuration invalid")
    return config


def load_sources(path: str) -> List[DataSource]:
    """Read data source records from a JSON file (a list of source objects)."""
    with open(path, 'r') as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get('sources', [])
    return [DataSource.from_dict(item) for item in data]


def load_inventory(path: str, logger: logging.Logger) -> Inventory:
    try:
        return Inventory.load(path)
    except FileNotFoundError:
        logger.info(f"Creating new inventory at {path}")
    except InventoryVersionError as e:
        logger.warning(f"Starting a new inventory: {e}")
    return Inventory.create_new()


def add_cache_arguments(parser: argparse.ArgumentParser) -> None:
    """Add cache location arguments to a parser."""
    group = parser.add_argument_group('Cache')
    group.add_argument('--cache-dir', help='Override CACHE_DIR')
    group.add_argument('--metadata', help='Override CACHE_METADATA_FILE')
    group.add_argument('--server-inventory', help='Override INVENTORY_CACHE_FILE')


def run_scan(
    worker: ScanWorker,
    request: ScanRequest,
    progress: Optional[ScanProgress],
    logger: logging.Logger
) -> Optional[Changeset]:
    """
    Submit a request to the worker and consume its messages.

    Returns:
        The changeset, or None if the scan failed or was interrupted
    """
    worker.submit(request)
    try:
        for message in worker.messages():
            if isinstance(message, ProgressReport):
                if progress:
                    progress(message)
            elif isinstance(message, ErrorReport):
                if message.fatal:
                    logger.error(f"Scan failed: {message.message}")
                    return None
                logger.warning(message.message)
            elif isinstance(message, CompletionReport):
                return message.changeset
    except KeyboardInterrupt:
        worker.cancel()
        worker.join()
        raise
    return None


def cmd_scan(args: argparse.Namespace) -> int:
    """Execute scan command for local and remote sources."""
    logger = setup_logging(args.verbose)

    try:
        sources = load_sources(args.sources)
    except FileNotFoundError:
        logger.error(f"Sources file not found: {args.sources}")
        return 1
    except (ValueError, KeyError, TypeError) as e:
        logger.error(f"Invalid sources file {args.sources}: {e}")
        return 1

    inventory = load_inventory(args.inventory, logger)
    inventory.set_sources(sources)

    scope = []
    if args.source:
        for name in args.source:
            source = inventory.get_source_by_name(name)
            if source is None:
                logger.error(f"Unknown source: {name}")
                return 1
            scope.append(source.id)

    logger.info(f"Sources: {len(sources)} ({len(scope) or len(sources)} in scope)")
    logger.info(f"Inventory: {args.inventory} ({inventory.total_pictures:,} pictures)")

    progress = None
    if not args.quiet:
        progress = ScanProgress(show_files=args.show_files, logger=logger)

    request = ScanRequest(sources=inventory.sources, existing=inventory.pictures, scope=scope or None)
    try:
        changeset = run_scan(ScanWorker(logger=logger), request, progress, logger)
    except KeyboardInterrupt:
        logger.info("Interrupted by user, inventory unchanged")
        return 130

    if changeset is None:
        return 1

    if args.dry_run:
        logger.info(f"[DRY RUN] Would apply: {changeset.summary()}")
    else:
        inventory.apply_changeset(changeset)
        inventory.save(args.inventory)

    if not args.quiet:
        Reporter().report_changeset(changeset)

    return 1 if changeset.has_errors else 0


def cmd_rescan(args: argparse.Namespace) -> int:
    """Execute rescan command for the server-mounted sources."""
    logger = setup_logging(args.verbose)

    try:
        config = get_cache_config(args, logger)
    except ValueError:
        return 1

    metadata = CacheMetadataStore(config.cache_dir, config.metadata_path, logger=logger)
    metadata.load()
    service = ServerInventory(config, metadata=metadata, logger=logger)
    service.load()

    progress = None if args.quiet else ScanProgress(show_files=args.show_files, logger=logger)
    changeset = service.rescan(progress=progress)
    if changeset is None:
        return 1

    if not args.quiet:
        Reporter().report_changeset(changeset)
    return 1 if changeset.has_errors else 0


def cmd_sweep(args: argparse.Namespace) -> int:
    """Execute sweep command (one eviction pass)."""
    logger = setup_logging(args.verbose)

    try:
        config = get_cache_config(args, logger)
    except ValueError:
        return 1

    metadata = CacheMetadataStore(config.cache_dir, config.metadata_path, logger=logger)
    metadata.load()
    stats = Evictor(metadata, config, logger=logger).sweep()
    if stats is None:
        return 1

    if not args.quiet:
        print()
        print(f"Evicted: {stats.evicted} ({stats.budget_evicted} over budget, {stats.ttl_evicted} expired)")
        print(f"Freed: {stats.bytes_freed:,} bytes")
        print(f"Cache size: {stats.bytes_after:,} bytes")
    return 0 if stats.persisted and stats.errors == 0 else 1


def cmd_pregen(args: argparse.Namespace) -> int:
    """Execute pregen command: generate missing tiers for server pictures."""
    logger = setup_logging(args.verbose)

    try:
        config = get_cache_config(args, logger)
    except ValueError:
        return 1
    if args.batch_size:
        config.batch_size = args.batch_size
    if args.delay is not None:
        config.batch_delay = args.delay

    metadata = CacheMetadataStore(config.cache_dir, config.metadata_path, logger=logger)
    metadata.load()
    service = ServerInventory(config, metadata=metadata, logger=logger)
    if not service.load():
        logger.error(f"No server inventory at {config.inventory_path}; run rescan first")
        return 1
    service.refresh_sources()

    cache = ThumbnailCache(config, metadata, service.root_for, logger=logger)
    pregenerator = IdlePregenerator(cache, metadata, config, logger=logger)

    items = service.picture_items()
    if args.limit:
        items = items[:args.limit]
    if pregenerator.seed(items) == 0:
        logger.info("All thumbnails already cached")
        return 0

    progress = None if args.quiet else GenerationProgress(show_files=args.show_files, logger=logger)
    try:
        stats = pregenerator.run_once(force=True, progress=progress)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        metadata.persist_if_dirty()
        return 130

    if stats is None:
        return 1
    if not args.quiet:
        print()
        print(f"Generated: {stats.generated}")
        print(f"Errors: {stats.errors}")
        print(f"Time: {stats.elapsed_seconds:.1f}s")
        print(f"Rate: {stats.rate_per_minute:.1f}/min")
    return 0 if stats.errors == 0 else 1


def cmd_report(args: argparse.Namespace) -> int:
    """Execute report command."""
    logger = setup_logging(args.verbose)

    try:
        config = get_cache_config(args, logger)
    except ValueError:
        return 1

    path = args.inventory or config.inventory_path
    try:
        inventory = Inventory.load(path)
    except FileNotFoundError:
        logger.error(f"Inventory not found: {path}")
        return 1
    except (OSError, ValueError) as e:
        logger.error(f"Failed to load inventory: {e}")
        return 1

    reporter = Reporter()
    reporter.report_summary(inventory)
    if not args.no_cache:
        metadata = CacheMetadataStore(config.cache_dir, config.metadata_path, logger=logger)
        metadata.load()
        reporter.report_cache(metadata, config)
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog='gallery',
        description='Picture inventory and thumbnail cache tools',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m gallery scan --sources sources.json --inventory inventory.json
  python -m gallery rescan
  python -m gallery pregen --limit 10
  python -m gallery sweep
  python -m gallery report

Server sources come from SERVER_SOURCES or the folders under SERVER_MOUNT_ROOT.
"""
    )

    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Scan command
    scan_parser = subparsers.add_parser('scan', help='Reconcile local/remote sources into an inventory')
    scan_parser.add_argument('-s', '--sources', required=True, help='JSON file with data source records')
    scan_parser.add_argument('-i', '--inventory', default='inventory.json', help='Inventory file')
    scan_parser.add_argument('--source', action='append', help='Source name(s) to scan (default: all)')
    scan_parser.add_argument('-n', '--dry-run', action='store_true', help='Report changes without saving')
    scan_parser.add_argument('-q', '--quiet', action='store_true', help='Suppress progress output')
    scan_parser.add_argument('--show-files', action='store_true', help='Print each file as scanned')
    scan_parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')

    # Rescan command
    rescan_parser = subparsers.add_parser('rescan', help='Rescan server-mounted sources')
    rescan_parser.add_argument('-q', '--quiet', action='store_true', help='Suppress progress output')
    rescan_parser.add_argument('--show-files', action='store_true', help='Print each file as scanned')
    rescan_parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    add_cache_arguments(rescan_parser)

    # Sweep command
    sweep_parser = subparsers.add_parser('sweep', help='Evict thumbnails over budget or past their TTL')
    sweep_parser.add_argument('--max-bytes', type=int, help='Override CACHE_MAX_BYTES')
    sweep_parser.add_argument('-q', '--quiet', action='store_true', help='Suppress summary output')
    sweep_parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    add_cache_arguments(sweep_parser)

    # Pregen command
    pregen_parser = subparsers.add_parser('pregen', help='Generate missing thumbnail tiers')
    pregen_parser.add_argument('--limit', type=int, metavar='N', help='Only the N newest pictures')
    pregen_parser.add_argument('-b', '--batch-size', type=int, help='Pictures per batch')
    pregen_parser.add_argument('-d', '--delay', type=float, help='Seconds between batches')
    pregen_parser.add_argument('-q', '--quiet', action='store_true', help='Suppress progress output')
    pregen_parser.add_argument('--show-files', action='store_true', help='Print each generated thumbnail')
    pregen_parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    add_cache_arguments(pregen_parser)

    # Report command
    report_parser = subparsers.add_parser('report', help='Summarize an inventory and the cache')
    report_parser.add_argument('-i', '--inventory', help='Inventory file (default: server snapshot)')
    report_parser.add_argument('--no-cache', action='store_true', help='Skip cache statistics')
    report_parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    add_cache_arguments(report_parser)

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    commands = {
        'scan': cmd_scan,
        'rescan': cmd_rescan,
        'sweep': cmd_sweep,
        'pregen': cmd_pregen,
        'report': cmd_report,
    }
    return commands[parsed_args.command](parsed_args)
