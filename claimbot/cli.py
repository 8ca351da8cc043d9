#!/usr/bin/env python3
"""
claimbot Command Line Interface

Main entry point for the `claimbot` command.

Usage:
    claimbot serve                # Run the bot and the HTTP trigger API
    claimbot status [--json]      # Show claimed packages and marks
    claimbot upgrade-db           # Upgrade legacy database records in place
    claimbot marks                # List available marks
    claimbot --version            # Show version
"""

import argparse
import json
import sys

from claimbot import __version__


def _load_store():
    from claimbot.marks.store import PackageStore
    from claimbot.settings import get_settings

    store = PackageStore.from_settings(get_settings())
    store.load()
    return store


def cmd_serve(args):
    """Handle serve subcommand."""
    import uvicorn

    from claimbot.logging_config import setup_logging
    from claimbot.settings import get_settings

    setup_logging()
    settings = get_settings()
    host = args.host or settings.http_host
    port = args.port or settings.http_port

    print(f"Starting claimbot at http://{host}:{port}")
    print("Press Ctrl+C to stop")

    uvicorn.run(
        "claimbot.api.main:app",
        host=host,
        port=port,
        log_config=None,
    )


def cmd_status(args):
    """Handle status subcommand."""
    from claimbot.errors import ClaimBotError

    try:
        store = _load_store()
    except ClaimBotError as e:
        print(f"Error: {e.reason}", file=sys.stderr)
        return 1

    if args.json:
        data = {
            "claims": [claim.to_dict() for claim in store.claims],
            "marks": [mark_set.to_dict() for mark_set in store.mark_sets],
        }
        print(json.dumps(data, indent=2, ensure_ascii=False))
        return 0

    print("Claims:")
    for claim in store.claims:
        if not claim.packages:
            continue
        who = claim.display_name or f"uid={claim.user_id}"
        print(f"  {who}: {' '.join(sorted(claim.package_names))}")

    print("\nMarks:")
    for mark_set in store.mark_sets:
        marks = ", ".join(
            f"{m.name} ({m.comment})" if m.comment else m.name for m in mark_set.marks
        )
        print(f"  {mark_set.package_name}: {marks}")
    return 0


def cmd_upgrade_db(args):
    """Handle upgrade-db subcommand."""
    from claimbot.errors import ClaimBotError

    try:
        store = _load_store()
    except ClaimBotError as e:
        print(f"Error: {e.reason}", file=sys.stderr)
        return 1

    print(
        f"Database upgraded: {len(store.claims)} claim record(s), "
        f"{len(store.mark_sets)} marked package(s)"
    )
    return 0


def cmd_marks(args):
    """List mark definitions, including configured ones."""
    from claimbot.marks.definitions import load_definitions
    from claimbot.settings import get_settings

    for definition in load_definitions(get_settings().marks).values():
        flags = []
        if definition.comment_required:
            flags.append("comment required")
        if not definition.user_can_set:
            flags.append("bot only")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        print(f"{definition.name:<14} {definition.description}{suffix}")
    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="claimbot",
        description="claimbot - package claim and status-mark tracking bot",
    )
    parser.add_argument(
        "--version", "-V", action="store_true", help="Show version and exit"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser(
        "serve", help="Run the bot and the HTTP trigger API"
    )
    serve_parser.add_argument("--host", default=None, help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    serve_parser.set_defaults(func=cmd_serve)

    status_parser = subparsers.add_parser(
        "status", help="Show claimed packages and marks"
    )
    status_parser.add_argument(
        "--json", action="store_true", help="Print the raw records as JSON"
    )
    status_parser.set_defaults(func=cmd_status)

    upgrade_parser = subparsers.add_parser(
        "upgrade-db", help="Upgrade legacy database records in place"
    )
    upgrade_parser.set_defaults(func=cmd_upgrade_db)

    marks_parser = subparsers.add_parser("marks", help="List available marks")
    marks_parser.set_defaults(func=cmd_marks)

    args = parser.parse_args()

    if args.version:
        print(f"claimbot version {__version__}")
        return 0

    if not args.command:
        parser.print_help()
        return 0

    return args.func(args) or 0


if __name__ == "__main__":
    sys.exit(main())
