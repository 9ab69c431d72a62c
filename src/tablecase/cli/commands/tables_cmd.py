from __future__ import annotations

import argparse

from rich.table import Table

from tablecase.cli.context import CLIContext
from tablecase.cli.endpoint_options import add_endpoint_args, get_endpoint_info, get_sync_client


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("tables", help="List tables available on the cloud endpoint")
    add_endpoint_args(parser)
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    endpoint = get_endpoint_info(args, ctx)
    table_ids = get_sync_client(endpoint, ctx).list_table_ids()

    table = Table(title=f"Tables on {endpoint.server_url} ({len(table_ids)})")
    table.add_column("Table ID")
    for table_id in table_ids:
        table.add_row(table_id)
    ctx.console.print(table)
    return 0
