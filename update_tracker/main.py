"""Main entry point for the game update tracker.

This module provides the command-line interface with:
- Command-line argument parsing
- Service wiring through a lazily initialized application context
- Graceful shutdown handling
"""

import argparse
import asyncio
import signal
import sys
from datetime import datetime
from pathlib import Path

import structlog

from update_tracker.models import CandidateListing, CycleReport, DecisionKind, EngineConfig, TrackedTitle
from update_tracker.services.catalogue import CatalogueStore
from update_tracker.services.classifier import ClassifierClient, ConfidenceBlender
from update_tracker.services.config import ConfigurationService
from update_tracker.services.decision_engine import DecisionEngine
from update_tracker.services.errors import ValidationError, get_error_service, handle_error
from update_tracker.services.feed import CandidateFeedService, load_candidates
from update_tracker.services.http_client import HttpClientService
from update_tracker.services.logging import setup_logging
from update_tracker.services.resolver import VersionResolver
from update_tracker.services.review import (
    confirm_pending,
    dismiss_related,
    reject_pending,
    track_related_same,
    track_related_separate,
)


log = structlog.stdlib.get_logger()

VERSION = "0.1.0"


class ApplicationContext:
    """Container for application services and state.

    Services are created on first use so commands that only touch the
    catalogue never open an HTTP client.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        catalogue_path: Path | None = None,
    ) -> None:
        """Initialize the application context.

        Args:
            config_path: Path to configuration file
            catalogue_path: Path to the tracked-title catalogue
        """
        self._config_path: Path | None = config_path
        self._catalogue_path: Path | None = catalogue_path

        self._config_service: ConfigurationService | None = None
        self._config: EngineConfig | None = None
        self._http_client: HttpClientService | None = None
        self._catalogue: CatalogueStore | None = None
        self._feed: CandidateFeedService | None = None
        self._engine: DecisionEngine | None = None

        self._shutdown_requested: bool = False

    @property
    def config_service(self) -> ConfigurationService:
        if self._config_service is None:
            self._config_service = ConfigurationService(config_path=self._config_path)
        return self._config_service

    @property
    def config(self) -> EngineConfig:
        if self._config is None:
            self._config = self.config_service.load_config()
        return self._config

    @property
    def http_client(self) -> HttpClientService:
        if self._http_client is None:
            self._http_client = HttpClientService(rate_limit_delay=self.config.request_delay)
        return self._http_client

    @property
    def catalogue(self) -> CatalogueStore:
        if self._catalogue is None:
            self._catalogue = CatalogueStore(self._catalogue_path)
        return self._catalogue

    @property
    def feed(self) -> CandidateFeedService:
        """Get the feed service.

        Raises:
            ValidationError: If no feed URL is configured
        """
        if self._feed is None:
            if not self.config.feed_url:
                raise ValidationError(
                    "No listings feed configured",
                    field="feed_url",
                    constraints=["set feed_url in the configuration or pass --listings"],
                )
            self._feed = CandidateFeedService(self.http_client, self.config.feed_url)
        return self._feed

    @property
    def engine(self) -> DecisionEngine:
        if self._engine is None:
            config = self.config
            classifier = None
            if config.classifier_enabled and config.classifier_url:
                classifier = ClassifierClient(self.http_client, config.classifier_url, config.classifier_timeout)
            resolver = None
            if config.resolver_url:
                resolver = VersionResolver(self.http_client, config.resolver_url, config.resolver_concurrency)
            self._engine = DecisionEngine(
                config=config,
                blender=ConfidenceBlender(classifier, enabled=config.classifier_enabled),
                resolver=resolver,
            )
        return self._engine

    def request_shutdown(self) -> None:
        """Request graceful shutdown of the application."""
        self._shutdown_requested = True
        log.info("Shutdown requested")

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested

    async def cleanup(self) -> None:
        """Close network resources."""
        if self._http_client is not None:
            await self._http_client.close()
        log.debug("Application cleanup complete")


class ParsedArgs:
    """Type-safe container for parsed command-line arguments."""

    def __init__(
        self,
        command: str,
        config: Path | None,
        catalogue: Path | None,
        log_level: str,
        log_dir: Path | None,
        listings: Path | None = None,
        dry_run: bool = False,
        title: str | None = None,
        link: str | None = None,
        separate: bool = False,
    ) -> None:
        self.command: str = command
        self.config: Path | None = config
        self.catalogue: Path | None = catalogue
        self.log_level: str = log_level
        self.log_dir: Path | None = log_dir
        self.listings: Path | None = listings
        self.dry_run: bool = dry_run
        self.title: str | None = title
        self.link: str | None = link
        self.separate: bool = separate


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="update-tracker",
        description="Reconcile tracked games against newly published release listings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  update-tracker check                          Check the configured feed for updates
  update-tracker check --listings recent.json   Check a saved listings file
  update-tracker pending                        Show updates waiting for confirmation
  update-tracker approve "Hollow Knight" https://example.org/post/123
        """,
    )

    _ = parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    _ = parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: ~/.config/game-update-tracker/config.json)",
    )
    _ = parser.add_argument(
        "--catalogue",
        type=Path,
        default=None,
        help="Path to the tracked-title catalogue (default: ~/.local/share/game-update-tracker/catalogue.json)",
    )
    _ = parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Set the logging level (default: from configuration)",
    )
    _ = parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Directory for rotating log files (default: console only)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser("check", help="Run one reconciliation cycle")
    _ = check.add_argument("--listings", type=Path, default=None, help="Read listings from a JSON file")
    _ = check.add_argument("--dry-run", action="store_true", help="Do not save the catalogue")

    _ = subparsers.add_parser("pending", help="List pending updates and related-title suggestions")

    for name, help_text in (
        ("approve", "Confirm a pending update"),
        ("reject", "Reject a pending update"),
        ("dismiss", "Dismiss a related-title suggestion"),
        ("track", "Track a related-title suggestion"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        _ = sub.add_argument("title", help="Tracked title id or name")
        _ = sub.add_argument("link", help="Link of the listing")
        if name == "track":
            _ = sub.add_argument(
                "--separate",
                action="store_true",
                help="Track it as its own title instead of a version of this one",
            )

    return parser


def parse_arguments(argv: list[str] | None = None) -> ParsedArgs:
    """Parse command-line arguments.

    Returns:
        Parsed arguments container
    """
    ns = build_parser().parse_args(argv)

    return ParsedArgs(
        command=str(ns.command),
        config=ns.config,
        catalogue=ns.catalogue,
        log_level=ns.log_level or "",
        log_dir=ns.log_dir,
        listings=getattr(ns, "listings", None),
        dry_run=bool(getattr(ns, "dry_run", False)),
        title=getattr(ns, "title", None),
        link=getattr(ns, "link", None),
        separate=bool(getattr(ns, "separate", False)),
    )


def setup_signal_handlers(context: ApplicationContext) -> None:
    """Set up signal handlers for graceful shutdown.

    Args:
        context: Application context for shutdown coordination
    """
    def signal_handler(signum: int, frame: object) -> None:
        _ = frame
        log.info("Received signal", signal=signal.Signals(signum).name)
        context.request_shutdown()

    _ = signal.signal(signal.SIGINT, signal_handler)
    _ = signal.signal(signal.SIGTERM, signal_handler)

    log.debug("Signal handlers registered")


def find_title(titles: list[TrackedTitle], key: str) -> TrackedTitle:
    """Find a tracked title by id, or by case-insensitive name.

    Raises:
        ValidationError: If no title or more than one title matches
    """
    for title in titles:
        if title.id == key:
            return title
    matches = [title for title in titles if title.title.lower() == key.lower()]
    if len(matches) == 1:
        return matches[0]
    if matches:
        raise ValidationError(f"More than one tracked title is named '{key}'; use its id", field="title", value=key)
    raise ValidationError(f"No tracked title matches '{key}'", field="title", value=key)


def format_report(report: CycleReport) -> str:
    lines = [
        f"Checked {report.checked} title(s): {report.updates_found} update(s), "
        f"{report.pending_found} pending, {report.sequels_found} related, {report.errors} error(s)",
    ]
    for event in report.notifications:
        marker = {
            DecisionKind.AUTO_APPROVED: "UPDATE",
            DecisionKind.PENDING_CONFIRMATION: "PENDING",
            DecisionKind.SEQUEL_SUGGESTED: "RELATED",
            DecisionKind.SEQUEL_TRACKED: "TRACKED",
        }.get(event.kind, event.kind.value.upper())
        version = f" {event.version}" if event.version else ""
        lines.append(f"  [{marker}] {event.title}{version} -> {event.link}")
    for message in report.error_messages:
        lines.append(f"  [ERROR] {message}")
    return "\n".join(lines)


def format_pending(titles: list[TrackedTitle]) -> str:
    lines: list[str] = []
    for title in titles:
        relations = [related for related in title.pending_relations if not related.dismissed]
        if not title.pending_updates and not relations:
            continue
        lines.append(f"{title.title} ({title.id})")
        for pending in title.pending_updates:
            flag = " [suspicious]" if pending.suspicious else ""
            lines.append(f"  update{flag}: {pending.new_title}")
            lines.append(f"    {pending.new_link}")
            lines.append(f"    {pending.reason}")
        for related in relations:
            lines.append(f"  {related.relationship.value.replace('_', ' ')}: {related.title}")
            lines.append(f"    {related.link}")
    return "\n".join(lines) if lines else "Nothing waiting for review."


async def run_check(context: ApplicationContext, listings_path: Path | None, dry_run: bool) -> int:
    titles = context.catalogue.load()
    if not titles:
        print("The catalogue is empty; nothing to check.")
        return 0

    try:
        candidates: list[CandidateListing]
        if listings_path is not None:
            candidates = load_candidates(listings_path)
        else:
            candidates = await context.feed.fetch_candidates(limit=context.config.feed_limit)

        if context.shutdown_requested:
            log.info("Shutdown requested before the cycle started")
            return 130

        report = await context.engine.run_cycle(titles, candidates, now=datetime.now())
    finally:
        await context.cleanup()

    if report.errors:
        counts = context.engine.error_service.get_error_count_by_category()
        log.warning("Cycle finished with errors", **{category.value: count for category, count in counts.items()})

    titles.extend(report.new_titles)
    if not dry_run:
        context.catalogue.save(titles)

    print(format_report(report))
    return 0 if report.errors == 0 else 2


def run_review(context: ApplicationContext, args: ParsedArgs) -> int:
    titles = context.catalogue.load()
    title = find_title(titles, args.title or "")
    link = args.link or ""

    if args.command == "approve":
        entry = confirm_pending(title, link)
        print(f"Approved {title.title} {entry.version}")
    elif args.command == "reject":
        pending = reject_pending(title, link)
        print(f"Rejected {pending.new_title}")
    elif args.command == "dismiss":
        related = dismiss_related(title, link)
        print(f"Dismissed {related.title}")
    elif args.separate:
        new_title = track_related_separate(title, link)
        titles.append(new_title)
        print(f"Now tracking {new_title.title} ({new_title.id})")
    else:
        entry = track_related_same(title, link)
        print(f"Recorded {entry.title} as a version of {title.title}")

    context.catalogue.save(titles)
    return 0


def run_command(context: ApplicationContext, args: ParsedArgs) -> int:
    if args.command == "check":
        return asyncio.run(run_check(context, args.listings, args.dry_run))
    if args.command == "pending":
        print(format_pending(context.catalogue.load()))
        return 0
    return run_review(context, args)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the application."""
    args = parse_arguments(argv)

    context = ApplicationContext(config_path=args.config, catalogue_path=args.catalogue)

    _ = setup_logging(
        log_level=args.log_level or context.config.log_level,
        log_dir=args.log_dir,
    )

    log.info("Starting game update tracker", version=VERSION, command=args.command)

    setup_signal_handlers(context)

    try:
        exit_code = run_command(context, args)

    except KeyboardInterrupt:
        log.info("Interrupted by user")
        exit_code = 130

    except Exception as e:
        friendly = handle_error(e, operation=args.command, component="cli")
        print(f"Error: {get_error_service().create_user_message(friendly)}", file=sys.stderr)
        exit_code = 1

    log.info("Exiting", exit_code=exit_code)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
