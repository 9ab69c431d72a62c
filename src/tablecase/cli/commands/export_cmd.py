from __future__ import annotations

import argparse
from pathlib import Path

from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn, TimeElapsedColumn

from tablecase.application.services.export_service import ExportTask
from tablecase.cli.context import CLIContext
from tablecase.cli.endpoint_options import add_endpoint_args, get_endpoint_info, get_sync_client
from tablecase.cli.prompts import ConsoleConfirmer
from tablecase.core.config import read_bool_env
from tablecase.domain.models.export import CsvConfig, ExportOutcome, ProgressEvent
from tablecase.infrastructure.files.export_paths import ExportPathPolicy, ExportTarget
from tablecase.infrastructure.store.row_store import RowStore

_WAIT_POLL_SECONDS = 0.2


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("export", help="Download a table and write it to CSV")
    parser.add_argument("--table-id", required=True, help="Remote table to export")
    add_endpoint_args(parser)
    parser.add_argument(
        "--save-dir",
        default=None,
        help="Directory holding the Download/ tree (default: $TABLECASE_DOWNLOAD_DIR or project root)",
    )
    parser.add_argument(
        "--include-metadata",
        action="store_true",
        help="Append row metadata columns (_id, _row_etag, ...) after the data columns.",
    )
    parser.add_argument(
        "--formatted",
        action="store_true",
        help="Collapse whitespace in values and write the *_formatted.csv variant.",
    )
    parser.add_argument(
        "--column",
        action="append",
        default=[],
        help="Explicit output column; may be passed multiple times. Overrides derived columns.",
    )
    parser.add_argument("--null-value", default="", help="Text written for missing values (default: empty)")
    parser.add_argument(
        "--no-input",
        action="store_true",
        default=read_bool_env("TABLECASE_NO_INPUT", False),
        help="Never prompt; an existing export is overwritten.",
    )
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    endpoint = get_endpoint_info(args, ctx)
    config = CsvConfig(
        columns=tuple(args.column) if args.column else None,
        include_metadata=bool(args.include_metadata),
        formatted=bool(args.formatted),
        null_value=str(args.null_value),
    )
    save_dir = Path(args.save_dir).expanduser().resolve() if args.save_dir else ctx.paths.download_dir
    interactive = not args.no_input and ctx.console.is_terminal

    task = ExportTask(
        client=get_sync_client(endpoint, ctx),
        store=RowStore(args.table_id),
        config=config,
        target=ExportTarget(endpoint=endpoint, table_id=args.table_id, config=config),
        path_policy=ExportPathPolicy(save_dir),
        confirmer=ConsoleConfirmer(ctx.console),
        interactive=interactive,
    )

    progress = Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=ctx.console,
    )
    stage_task: TaskID | None = None
    display_started = False

    def _on_progress(event: ProgressEvent) -> None:
        # Started lazily so an overwrite prompt is not drawn under the live bar.
        nonlocal display_started, stage_task
        if not display_started:
            progress.start()
            display_started = True
        if event.stage_label is not None:
            if stage_task is not None:
                progress.update(stage_task, visible=False)
            stage_task = progress.add_task(
                escape(event.stage_label),
                total=None if event.indeterminate else 100,
                completed=event.percent,
            )
            return
        if stage_task is not None:
            progress.update(stage_task, completed=event.percent)

    task.subscribe(_on_progress)
    task.start()
    try:
        outcome = _wait_for_outcome(task, ctx)
    finally:
        progress.stop()

    _print_summary(ctx, args.table_id, outcome)
    return 0 if outcome.ok else 1


def _wait_for_outcome(task: ExportTask, ctx: CLIContext) -> ExportOutcome:
    while True:
        try:
            outcome = task.wait(_WAIT_POLL_SECONDS)
        except KeyboardInterrupt:
            ctx.console.print("Cancellation requested; waiting for the export to stop...")
            task.cancel()
            continue
        if outcome is not None:
            return outcome


def _print_summary(ctx: CLIContext, table_id: str, outcome: ExportOutcome) -> None:
    lines = [
        f"Table: {escape(table_id)}",
        f"Status: {'done' if outcome.ok else 'error'}",
        f"Output: {escape(outcome.output_path or 'n/a')}",
    ]
    if outcome.ok:
        lines.append(f"Rows written: {outcome.rows_written}")
        lines.append(f"Retrieved from endpoint: {outcome.fetched}")
    else:
        lines.append(f"Failure: {outcome.kind.value if outcome.kind else 'unknown'}")
        lines.append(f"Error: {escape(outcome.message or 'unknown error')}")
    ctx.console.print(Panel.fit("\n".join(lines), title="CSV Export"))
