"""Command-line interface for the Confluence pull sync.

Commands:

- ``pull [--full]`` -- run one pass; ``--full`` clears state first.
- ``page ID [PATH] [--force]`` -- refresh a single page.
- ``status`` -- show sync state.
- ``reset`` -- forget sync state.
- ``test`` -- check URL and credentials.
- ``export FILE`` -- convert a Markdown note to Confluence storage format.
- ``init`` -- write a starter config file.

Exit codes: 0 on success, 1 when a pass reports errors or a command fails.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from . import __version__
from .config import Config
from .config_loader import ensure_config
from .config_schema import load_runtime_config
from .converters.markdown_to_storage import convert_with_warnings
from .core.async_utils import run_sync
from .core.client import ConfluenceAPIError
from .logger import setup_logging
from .storage import LocalStorage
from .sync.engine import SyncEngine
from .sync.reporter import format_status, format_sync_report

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="confluence-sync",
        description="Pull Confluence page trees into a local Markdown folder",
    )
    parser.add_argument("--url", help="Confluence base URL (overrides CONFLUENCE_URL)")
    parser.add_argument("--username", help="Confluence username")
    parser.add_argument(
        "--password",
        help="Password or API token (prefer CONFLUENCE_PASSWORD env var)",
    )
    parser.add_argument("--roots", help="Comma-separated root page ids")
    parser.add_argument("--folder", help="Vault folder pages are written to")
    parser.add_argument("--vault", help="Local directory acting as the vault root")
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (development only)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--debug-format",
        choices=["text", "json"],
        default="text",
        help="Log line format (default: text)",
    )
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--version",
        action="version",
        version=f"confluence-sync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    pull = sub.add_parser("pull", help="Run one sync pass")
    pull.add_argument(
        "--full",
        action="store_true",
        help="Clear sync state first so every page is pulled again",
    )

    page = sub.add_parser("page", help="Refresh a single page")
    page.add_argument("page_id", help="Confluence page id")
    page.add_argument(
        "path",
        nargs="?",
        help="Vault-relative target file (default: the page's synced path)",
    )
    page.add_argument(
        "--force",
        action="store_true",
        help="Write even when the local copy is current",
    )

    sub.add_parser("status", help="Show sync state")
    sub.add_parser("reset", help="Forget sync state (files are kept)")
    sub.add_parser("test", help="Check URL and credentials")

    export = sub.add_parser(
        "export", help="Convert a Markdown note to Confluence storage format"
    )
    export.add_argument("file", help="Markdown file to convert")
    export.add_argument(
        "-o", "--output", help="Write the result here instead of stdout"
    )

    sub.add_parser("init", help="Write a starter config file")
    return parser


def _overrides(args: argparse.Namespace) -> dict:
    overrides = {
        "url": args.url,
        "username": args.username,
        "password": args.password,
        "root_page_ids": args.roots,
        "folder": args.folder,
        "vault": args.vault,
        "insecure": args.insecure,
        "debug": args.debug,
    }
    return {k: v for k, v in overrides.items() if v}


def _print_report(report) -> int:
    print(format_sync_report(report))
    return 0 if report.success else 1


async def _run_engine_command(args: argparse.Namespace, config: Config) -> int:
    engine = SyncEngine.from_config(config)

    match args.command:
        case "pull":
            if args.full:
                await engine.reset()
            return _print_report(await engine.pull())
        case "page":
            report = await engine.sync_page(
                args.page_id, local_path=args.path, force=args.force
            )
            return _print_report(report)
        case "status":
            print(format_status(engine.stats()))
            return 0
        case "reset":
            await engine.reset()
            print("Sync state cleared. The next pass re-pulls every page.")
            return 0
        case "test":
            user = await run_sync(engine.client.test_connection)
            name = user.get("displayName") or user.get("username") or "unknown user"
            print(f"Connected to {config.base_url} as {name}")
            return 0
        case _:
            raise ValueError(f"Unknown command: {args.command}")


def _export(args: argparse.Namespace) -> int:
    source = Path(args.file).expanduser()
    text = LocalStorage(source.parent).read_text(source.name)
    result = convert_with_warnings(text)
    for warning in result.warnings:
        print(f"Warning: {warning}", file=sys.stderr)

    if args.output:
        Path(args.output).write_text(result.text + "\n", encoding="utf-8")
        print(f"Wrote {args.output}", file=sys.stderr)
    else:
        print(result.text)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(
        mode="cli",
        debug=args.debug,
        log_file=args.log_file,
        debug_format=args.debug_format,
    )

    try:
        if args.command == "export":
            return _export(args)
        if args.command == "init":
            print(f"Config file: {ensure_config()}")
            return 0

        config, sources = load_runtime_config(_overrides(args))
        logger.debug("Configuration loaded from: %s", ", ".join(sources))
        return asyncio.run(_run_engine_command(args, config))
    except ConfluenceAPIError as e:
        print(f"Confluence error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"File error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
