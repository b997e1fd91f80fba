# src/main.py - v1
"""CLI entry point: page, resolve, rarity, address, clear-cache commands.

Usage:
    nftmeta page <tick> [--offset N] [--limit N] [--filter TRAIT=VALUE ...]
    nftmeta resolve <ipfs-path> [-o FILE]
    nftmeta rarity <tick>
    nftmeta address <address> [--tick TICK]
    nftmeta clear-cache [tick]

Results are printed to stdout as JSON; logs go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from nftmeta.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    from nftmeta.config.settings import ConfigurationError, load_settings

    try:
        settings = load_settings()
    except (ConfigurationError, ValueError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1
    _setup_logging(settings, args.verbose)

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="nftmeta",
        description=f"nftmeta v{__version__}, NFT metadata browser",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- page ---
    p_page = subparsers.add_parser("page", help="Fetch one page of a collection")
    p_page.add_argument("tick", help="Collection tick")
    p_page.add_argument("--offset", type=int, default=0, help="Page offset (default: 0)")
    p_page.add_argument(
        "--limit", type=int, default=None,
        help="Page size (default: DISPLAY_LIMIT)",
    )
    p_page.add_argument(
        "--filter", dest="filters", action="append", default=[], metavar="TRAIT=VALUE",
        help="Attribute filter, repeatable",
    )
    p_page.add_argument(
        "--wait", action="store_true",
        help="Wait for background prefetch to finish before exiting",
    )
    p_page.set_defaults(func=_cmd_page)

    # --- resolve ---
    p_resolve = subparsers.add_parser("resolve", help="Resolve an IPFS path through the gateways")
    p_resolve.add_argument("path", help="CID or CID/path, optionally prefixed with ipfs://")
    p_resolve.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Write binary content to this file",
    )
    p_resolve.set_defaults(func=_cmd_resolve)

    # --- rarity ---
    p_rarity = subparsers.add_parser("rarity", help="Trait rarity table of a cached collection")
    p_rarity.add_argument("tick", help="Collection tick")
    p_rarity.set_defaults(func=_cmd_rarity)

    # --- address ---
    p_address = subparsers.add_parser("address", help="Tokens held by an address")
    p_address.add_argument("address", help="Wallet address")
    p_address.add_argument("--tick", default=None, help="Restrict to one collection")
    p_address.set_defaults(func=_cmd_address)

    # --- clear-cache ---
    p_clear = subparsers.add_parser("clear-cache", help="Drop cached collection metadata")
    p_clear.add_argument("tick", nargs="?", default=None, help="Collection tick (default: all)")
    p_clear.set_defaults(func=_cmd_clear_cache)

    return parser


async def _cmd_page(args: argparse.Namespace, settings: Any) -> int:
    """Print one page of a collection."""
    from nftmeta.api.facade import NftBrowser
    from nftmeta.core.errors import CollectionNotFound, MissingMetadataURI
    from nftmeta.pagination.filters import parse_filter_args

    try:
        filters = parse_filter_args(args.filters)
    except ValueError as exc:
        logger.error("%s", exc)
        return 1

    async with NftBrowser.from_settings(settings) as browser:
        try:
            page = await browser.browse_collection(
                args.tick, offset=args.offset, limit=args.limit, filters=filters or None,
            )
        except (CollectionNotFound, MissingMetadataURI) as exc:
            logger.error("%s", exc)
            return 1
        _print_json(page.model_dump(mode="json", by_alias=True))
        if args.wait:
            await browser.prefetcher.wait(args.tick)
    return 0


async def _cmd_resolve(args: argparse.Namespace, settings: Any) -> int:
    """Resolve content; JSON is printed, binary is written to --output."""
    from nftmeta.api.facade import NftBrowser

    async with NftBrowser.from_settings(settings) as browser:
        response = await browser.resolve_content(args.path)
        if response.json_body is not None:
            _print_json(response.json_body)
            return 0 if response.status == 200 else 1
        if response.stream is None:
            return 1
        try:
            if args.output is None:
                logger.error("Binary content (%s), use --output", response.headers.get("Content-Type"))
                return 1
            with args.output.open("wb") as f:
                async for block in response.stream.aiter_bytes():
                    f.write(block)
            logger.info("Wrote %s", args.output)
        finally:
            await response.stream.aclose()
    return 0


async def _cmd_rarity(args: argparse.Namespace, settings: Any) -> int:
    """Print the trait rarity table computed from the cache."""
    from nftmeta.api.facade import NftBrowser

    async with NftBrowser.from_settings(settings) as browser:
        table = await browser.collection_rarity(args.tick)
    if table is None:
        logger.error("No cached metadata for %s", args.tick)
        return 1
    _print_json({
        trait: {value: stats.model_dump() for value, stats in values.items()}
        for trait, values in table.items()
    })
    return 0


async def _cmd_address(args: argparse.Namespace, settings: Any) -> int:
    """Print the tokens held by an address."""
    from nftmeta.api.facade import NftBrowser

    async with NftBrowser.from_settings(settings) as browser:
        tokens = await browser.search_address(args.address, tick=args.tick)
    _print_json([t.model_dump(mode="json", by_alias=True) for t in tokens])
    return 0


async def _cmd_clear_cache(args: argparse.Namespace, settings: Any) -> int:
    from nftmeta.api.facade import NftBrowser

    async with NftBrowser.from_settings(settings) as browser:
        await browser.clear_cache(args.tick)
    logger.info("Cleared cache for %s", args.tick or "all collections")
    return 0


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _setup_logging(settings: Any, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from nftmeta.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
