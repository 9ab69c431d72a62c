from __future__ import annotations

import argparse

from tablecase.cli.context import CLIContext
from tablecase.domain.models.endpoint import EndpointInfo
from tablecase.infrastructure.remote.sync_client import SyncClient


def add_endpoint_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--server-url",
        default=None,
        help="Cloud endpoint address (default: $TABLECASE_SERVER_URL).",
    )
    parser.add_argument(
        "--app-id",
        default=None,
        help="Application id on the endpoint (default: $TABLECASE_APP_ID or 'default').",
    )
    parser.add_argument("--username", default=None, help="Login user (default: $TABLECASE_USERNAME).")
    parser.add_argument("--password", default=None, help="Login password (default: $TABLECASE_PASSWORD).")
    parser.add_argument(
        "--anonymous",
        action="store_true",
        help="Connect without credentials, ignoring any configured username/password.",
    )


def get_endpoint_info(args: argparse.Namespace, ctx: CLIContext) -> EndpointInfo:
    settings = ctx.settings
    info = EndpointInfo(
        server_url=args.server_url if args.server_url is not None else settings.server_url,
        app_id=args.app_id if args.app_id is not None else settings.app_id,
        username=args.username if args.username is not None else settings.username,
        password=args.password if args.password is not None else settings.password,
    ).sanitized(anonymous=bool(args.anonymous))
    info.validate()
    return info


def get_sync_client(endpoint: EndpointInfo, ctx: CLIContext) -> SyncClient:
    return SyncClient(
        endpoint,
        fetch_limit=ctx.settings.fetch_limit,
        timeout_seconds=ctx.settings.timeout_seconds,
    )
