"""CLI entrypoint for contact-resolver."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from collections.abc import Sequence

from .cache import CacheConfig, DirectoryCache
from .config import DEFAULT_CACHE_TTL_SECONDS, DEFAULT_MAX_RESULTS, DEFAULT_REQUEST_TIMEOUT, ResolverConfig
from .errors import AccessDeniedError, ConfigError, DirectoryFetchError, InvalidInputError
from .io_csv import contact_row, write_rows
from .logging_utils import configure_logging, get_logger
from .models import DirectorySource
from .service import ResolutionService
from .sources import HttpDirectorySource, JsonFileDirectorySource, make_retry_session

EXIT_OK = 0
EXIT_NO_RESULTS = 1
EXIT_INVALID = 2
EXIT_SOURCE_FAILED = 3


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(
        description="Contact resolver - cached fuzzy lookups over a contact directory."
    )
    action_group = parser.add_mutually_exclusive_group(required=False)
    action_group.add_argument("--search", metavar="TERM", help="Fuzzy search by name, email or phone.")
    action_group.add_argument("--email", metavar="QUERY", help="Find contacts whose email contains QUERY.")
    action_group.add_argument("--phone", metavar="NUMBER", help="Find the contact owning NUMBER.")
    action_group.add_argument("--list", action="store_true", help="List contacts in the directory.")
    action_group.add_argument("--check", action="store_true", help="Probe directory access.")

    source_group = parser.add_mutually_exclusive_group(required=False)
    source_group.add_argument(
        "--directory-url", help="Directory service base URL (or set CONTACT_DIRECTORY_URL)."
    )
    source_group.add_argument(
        "--directory-file", help="JSON contacts dump (or set CONTACT_DIRECTORY_FILE)."
    )
    parser.add_argument("--token", help="Directory API token (or set CONTACT_DIRECTORY_TOKEN).")
    parser.add_argument(
        "--max-results", type=int, help=f"Maximum results to return (default: {DEFAULT_MAX_RESULTS})."
    )
    parser.add_argument(
        "--cache-ttl",
        type=float,
        default=DEFAULT_CACHE_TTL_SECONDS,
        help="Seconds a directory snapshot stays fresh.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_REQUEST_TIMEOUT,
        help="Directory service request timeout in seconds.",
    )
    parser.add_argument("--output", default="-", help="Output CSV path (default: stdout).")
    parser.add_argument("--no-progress", action="store_true", help="Disable tqdm progress bars.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse and pre-validate CLI input."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not (args.search or args.email or args.phone or args.list or args.check):
        parser.error("Provide one of --search, --email, --phone, --list or --check.")
    return args


def namespace_to_config(args: argparse.Namespace) -> ResolverConfig:
    """Convert CLI args to validated ResolverConfig."""
    directory_url = args.directory_url
    directory_file = args.directory_file
    if not (directory_url or directory_file):
        directory_url = os.getenv("CONTACT_DIRECTORY_URL")
        directory_file = None if directory_url else os.getenv("CONTACT_DIRECTORY_FILE")
    return ResolverConfig(
        directory_url=directory_url,
        directory_file=directory_file,
        api_token=args.token or os.getenv("CONTACT_DIRECTORY_TOKEN"),
        cache_ttl_seconds=args.cache_ttl,
        max_results=DEFAULT_MAX_RESULTS if args.max_results is None else args.max_results,
        request_timeout=args.timeout,
        show_progress=not args.no_progress,
    )


def build_source(config: ResolverConfig, *, logger: logging.Logger) -> DirectorySource:
    if config.directory_url:
        return HttpDirectorySource(
            session=make_retry_session(config.user_agent, config.api_token),
            base_url=config.directory_url,
            timeout=config.request_timeout,
            logger=logger,
        )
    return JsonFileDirectorySource(path=str(config.directory_file), logger=logger)


def build_service(config: ResolverConfig, *, logger: logging.Logger) -> ResolutionService:
    """Build concrete dependencies for one resolution service."""
    cache = DirectoryCache(CacheConfig(ttl_seconds=config.cache_ttl_seconds), logger=logger)
    return ResolutionService(
        source=build_source(config, logger=logger),
        cache=cache,
        config=config,
        logger=logger,
    )


async def run_action(
    args: argparse.Namespace, service: ResolutionService, *, logger: logging.Logger
) -> int:
    """Execute the requested lookup and write CSV rows; return the exit code."""
    rows: list[dict[str, str]] = []
    if args.check:
        probe = await service.check_access()
        if probe.ok:
            logger.info("%s", probe.detail)
            return EXIT_OK
        logger.error("%s", probe.detail)
        return EXIT_NO_RESULTS
    if args.search:
        results = await service.search_by_name_or_text(args.search, args.max_results)
        rows = [contact_row(result.contact, result) for result in results]
    elif args.email:
        contacts = await service.find_by_email(args.email, args.max_results)
        rows = [contact_row(contact) for contact in contacts]
    elif args.phone:
        contact = await service.find_by_phone(args.phone)
        rows = [contact_row(contact)] if contact else []
    elif args.list:
        listing = await service.list_contacts(args.max_results)
        rows = [contact_row(contact) for contact in listing.contacts]
        if listing.truncated:
            logger.info("Showing %d of %d contacts", len(listing.contacts), listing.total)

    if not rows:
        logger.info("No matching contacts found.")
        return EXIT_NO_RESULTS
    write_rows(args.output, rows)
    return EXIT_OK


async def _run(args: argparse.Namespace, config: ResolverConfig, logger: logging.Logger) -> int:
    service = build_service(config, logger=logger)
    try:
        return await run_action(args, service, logger=logger)
    finally:
        service.close()


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    args = parse_args(argv)
    configure_logging(args.verbose)
    logger = get_logger()
    try:
        config = namespace_to_config(args)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return EXIT_INVALID

    try:
        return asyncio.run(_run(args, config, logger))
    except InvalidInputError as exc:
        logger.error("Invalid input: %s", exc)
        return EXIT_INVALID
    except (AccessDeniedError, DirectoryFetchError) as exc:
        logger.error("Error accessing contacts: %s", exc)
        return EXIT_SOURCE_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
