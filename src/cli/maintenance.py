"""Maintenance CLI for the profile store.

Usage::

    python -m src.cli scan [--limit N] [--clear] [--dry-run]
    python -m src.cli batch [--limit N] [--max-tracks N] [--no-fast] [--force] [--dry-run]
    python -m src.cli coverage
    python -m src.cli register --name NAME [--catalog-id ID] [--genres a,b] [--entity-id ID]

Every command prints a JSON document to stdout; logs go to stderr so the
output can be piped.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

import structlog

from src.models.profile import LifecycleState


def _configure_quiet_logging(level: int = logging.WARNING) -> None:
    """Send structlog and stdlib logging to stderr so stdout stays clean JSON."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    root.addHandler(handler)
    root.setLevel(level)


def _emit(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, default=str))


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_scan(args: argparse.Namespace, components: dict[str, Any]) -> int:
    scanner = components["scanner"]
    if args.clear:
        report = await scanner.scan_and_repair(limit=args.limit, dry_run=args.dry_run)
    else:
        report = (await scanner.scan(limit=args.limit)).to_dict()
    _emit(report)
    return 0


async def _handle_batch(args: argparse.Namespace, components: dict[str, Any]) -> int:
    driver = components["batch_driver"]
    overrides: dict[str, Any] = {"force": args.force, "dry_run": args.dry_run}
    if args.limit is not None:
        overrides["limit"] = args.limit
    if args.max_tracks is not None:
        overrides["max_tracks"] = args.max_tracks
    if args.no_fast:
        overrides["fast_mode"] = False
    report = await driver.run(driver.default_options(**overrides))
    _emit(report.to_dict())
    return 1 if report.errors else 0


async def _handle_coverage(args: argparse.Namespace, components: dict[str, Any]) -> int:  # noqa: ARG001
    counts = await components["store"].count_by_state()
    total = sum(counts.values())
    remaining = counts.get(LifecycleState.ABSENT.value, 0) + counts.get(LifecycleState.STAGED.value, 0)
    _emit({"total": total, "byState": counts, "remaining": remaining})
    return 0


async def _handle_register(args: argparse.Namespace, components: dict[str, Any]) -> int:
    from src.services.artist_profile_service import entity_id_for

    genres = [g.strip() for g in (args.genres or "").split(",") if g.strip()]
    entity_id = args.entity_id or entity_id_for(args.name)
    await components["store"].upsert_artist(entity_id, args.name, args.catalog_id, genres)
    _emit({"entityId": entity_id, "name": args.name, "catalogId": args.catalog_id, "genres": genres})
    return 0


_HANDLERS = {
    "scan": _handle_scan,
    "batch": _handle_batch,
    "coverage": _handle_coverage,
    "register": _handle_register,
}


async def _run(args: argparse.Namespace) -> int:
    # Deferred: importing src.main reads settings and configures logging.
    from src.main import build_components, config, settings

    _configure_quiet_logging(logging.INFO if args.verbose else logging.WARNING)

    components = build_components(settings, config)
    try:
        await components["store"].initialize()
        return await _HANDLERS[args.command](args, components)
    finally:
        await components["http_client"].aclose()


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m src.cli",
        description="Maintain SoundMatrix artist profiles.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at INFO level to stderr")
    subparsers = parser.add_subparsers(dest="command", help="Maintenance commands")

    # -- scan --
    scan_parser = subparsers.add_parser("scan", help="Find aggregates flagged built without enough tracks")
    scan_parser.add_argument("--limit", type=int, default=500, help="Maximum built aggregates to check")
    scan_parser.add_argument("--clear", action="store_true", help="Clear the built flag on violations")
    scan_parser.add_argument("--dry-run", action="store_true", dest="dry_run", help="Report without writing")

    # -- batch --
    batch_parser = subparsers.add_parser("batch", help="Build profiles for artists still missing one")
    batch_parser.add_argument("--limit", type=int, default=None, help="Maximum artists to process")
    batch_parser.add_argument("--max-tracks", type=int, default=None, dest="max_tracks", help="Target track count")
    batch_parser.add_argument("--no-fast", action="store_true", dest="no_fast", help="Use full budgets and delays")
    batch_parser.add_argument("--force", action="store_true", help="Rebuild artists already marked built")
    batch_parser.add_argument("--dry-run", action="store_true", dest="dry_run", help="Analyse without persisting")

    # -- coverage --
    subparsers.add_parser("coverage", help="Count artists by lifecycle state")

    # -- register --
    register_parser = subparsers.add_parser("register", help="Add or update an artist entity")
    register_parser.add_argument("--name", required=True, help="Artist name")
    register_parser.add_argument("--catalog-id", dest="catalog_id", default=None, help="Primary catalog artist id")
    register_parser.add_argument("--genres", default="", help="Comma-separated known genres")
    register_parser.add_argument("--entity-id", dest="entity_id", default=None, help="Explicit entity id")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
