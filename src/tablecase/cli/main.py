from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rich.console import Console

from tablecase.cli.commands import export_cmd, tables_cmd, web_cmd
from tablecase.cli.context import CLIContext
from tablecase.core.config import load_endpoint_settings, load_paths
from tablecase.core.errors import TablecaseError
from tablecase.core.logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tablecase",
        description="Export cloud endpoint tables to CSV",
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=Path.cwd(),
        help="Project root used for state and downloads (default: current working directory)",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0)

    subparsers = parser.add_subparsers(dest="command", required=True)
    export_cmd.register(subparsers)
    tables_cmd.register(subparsers)
    web_cmd.register(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    console = Console()

    ctx = CLIContext(
        paths=load_paths(args.project_root),
        settings=load_endpoint_settings(),
        console=console,
    )

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 2

    try:
        return handler(args, ctx)
    except TablecaseError as exc:
        logger.error(str(exc))
        return 1
