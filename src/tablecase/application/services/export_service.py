from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Protocol

from tablecase.application.services.csv_writer_service import CsvSerializer
from tablecase.application.services.fetch_service import PaginatedFetcher, RowPageClient
from tablecase.application.services.progress import ProgressChannel, ProgressListener
from tablecase.core.errors import DataFormatError, ExportStateError, RemoteFetchError, WriteError
from tablecase.domain.models.export import (
    FAILURE_MESSAGES,
    CsvConfig,
    ExportOutcome,
    ExportState,
    FailureKind,
)
from tablecase.infrastructure.files.export_paths import ExportTarget
from tablecase.infrastructure.store.row_store import RowStore

logger = logging.getLogger(__name__)

OVERWRITE_CSV = "overwrite_csv"
DONE_LABEL = "Done"
ERROR_LABEL = "Error"
DECLINED_MESSAGE = "Export aborted: existing output kept."

OutcomeListener = Callable[[ExportOutcome], None]


class Confirmer(Protocol):
    def confirm(self, prompt_key: str, interactive: bool, default_if_non_interactive: bool) -> bool: ...


class StaticConfirmer:
    """Answers every interactive prompt with a fixed value; headless prompts get their default."""

    def __init__(self, answer: bool = True) -> None:
        self.answer = answer

    def confirm(self, prompt_key: str, interactive: bool, default_if_non_interactive: bool) -> bool:
        if not interactive:
            return default_if_non_interactive
        return self.answer


class PathPolicy(Protocol):
    def exists(self, target: ExportTarget) -> bool: ...

    def delete(self, target: ExportTarget) -> None: ...

    def create_dirs(self, target: ExportTarget) -> None: ...

    def resolve_csv_path(self, target: ExportTarget) -> Path: ...


def classify_failure(exc: BaseException) -> FailureKind:
    if isinstance(exc, RemoteFetchError):
        return FailureKind.REMOTE_FETCH
    if isinstance(exc, DataFormatError):
        return FailureKind.DATA_FORMAT
    if isinstance(exc, (WriteError, OSError)):
        return FailureKind.WRITE
    return FailureKind.GENERIC


class ExportTask:
    """One cancellable export of a remote table into a CSV file.

    The task moves ``idle -> running -> succeeded | failed`` and is single
    use. ``run`` executes on the calling thread; ``start`` executes the same
    sequence on a daemon thread and ``wait`` collects the outcome.

    Cancellation is best effort: it is honoured between pages and between
    rows, leaves any partially written file in place and reports a
    ``generic`` failure.

    Every run ends with exactly one outcome, even when a progress or
    outcome listener raises. The row store is released once the outcome
    is recorded.
    """

    def __init__(
        self,
        *,
        client: RowPageClient,
        store: RowStore,
        config: CsvConfig,
        target: ExportTarget,
        path_policy: PathPolicy,
        confirmer: Confirmer,
        interactive: bool = False,
        progress: ProgressChannel | None = None,
    ) -> None:
        self.client = client
        self._store: RowStore | None = store
        self.config = config
        self.target = target
        self.path_policy = path_policy
        self.confirmer = confirmer
        self.interactive = interactive
        self.progress = progress or ProgressChannel()
        self._state = ExportState.IDLE
        self._state_lock = threading.Lock()
        self._cancel = threading.Event()
        self._done = threading.Event()
        self._outcome: ExportOutcome | None = None
        self._outcome_listeners: list[OutcomeListener] = []
        self._thread: threading.Thread | None = None

    @property
    def state(self) -> ExportState:
        return self._state

    @property
    def outcome(self) -> ExportOutcome | None:
        return self._outcome

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        return self.progress.subscribe(listener)

    def on_outcome(self, listener: OutcomeListener) -> None:
        self._outcome_listeners.append(listener)

    def cancel(self) -> None:
        self._cancel.set()

    def is_cancelled(self) -> bool:
        return self._cancel.is_set()

    def run(self) -> ExportOutcome:
        self._claim()
        return self._execute()

    def start(self) -> None:
        self._claim()
        self._thread = threading.Thread(
            target=self._execute,
            daemon=True,
            name=f"export-{self.target.table_id}",
        )
        self._thread.start()

    def wait(self, timeout: float | None = None) -> ExportOutcome | None:
        self._done.wait(timeout)
        return self._outcome

    def _claim(self) -> None:
        with self._state_lock:
            if self._state is not ExportState.IDLE:
                raise ExportStateError(f"Export task already {self._state.value}; create a new task to export again.")
            self._state = ExportState.RUNNING

    def _execute(self) -> ExportOutcome:
        started = time.monotonic()
        try:
            outcome = self._run_steps()
        except Exception as exc:
            outcome = self._failure(exc)
        except BaseException as exc:
            self._finish(self._failure(exc), started)
            raise
        self._finish(outcome, started)
        return outcome

    def _run_steps(self) -> ExportOutcome:
        target = self.target
        store = self._store
        if store is None:
            raise ExportStateError(f"Row store for table {target.table_id} was already released.")
        if self.path_policy.exists(target):
            if self.confirmer.confirm(OVERWRITE_CSV, self.interactive, not self.interactive):
                self.path_policy.delete(target)
            elif self.interactive:
                logger.info("Overwrite declined for table %s; leaving existing output in place", target.table_id)
                return ExportOutcome.failure(
                    FailureKind.GENERIC,
                    DECLINED_MESSAGE,
                    output_path=str(self.path_policy.resolve_csv_path(target)),
                )

        self.path_policy.create_dirs(target)

        fetched = False
        if store.size == 0:
            logger.info("Retrieving rows for table %s from %s", target.table_id, target.endpoint.describe())
            PaginatedFetcher(
                self.client,
                store,
                self.progress,
                cancellation_check=self.is_cancelled,
            ).fetch(target.table_id)
            fetched = True
        else:
            logger.info("Row store for table %s already holds %s rows; skipping retrieval", target.table_id, store.size)

        output_path = self.path_policy.resolve_csv_path(target)
        written = CsvSerializer(self.progress, cancellation_check=self.is_cancelled).write_all(
            store,
            self.config,
            output_path,
        )
        return ExportOutcome.success(output_path=str(output_path), rows_written=written, fetched=fetched)

    def _failure(self, exc: BaseException) -> ExportOutcome:
        kind = classify_failure(exc)
        logger.exception("Export of table %s failed (%s)", self.target.table_id, kind.value, exc_info=exc)
        detail = str(exc) or exc.__class__.__name__
        return ExportOutcome.failure(kind, f"{FAILURE_MESSAGES[kind]} {detail}")

    def _finish(self, outcome: ExportOutcome, started: float) -> None:
        try:
            if outcome.ok:
                self.progress.publish(100, DONE_LABEL, False)
            else:
                self.progress.publish(self.progress.last_percent, ERROR_LABEL, False)
        except Exception:
            logger.exception("Publishing the final progress event for table %s failed", self.target.table_id)
        finally:
            with self._state_lock:
                self._outcome = outcome
                self._state = ExportState.SUCCEEDED if outcome.ok else ExportState.FAILED
                # Tasks are single use; drop the rows with the outcome recorded.
                self._store = None
        logger.info(
            "Export of table %s %s in %.2fs",
            self.target.table_id,
            self._state.value,
            time.monotonic() - started,
        )
        try:
            for listener in list(self._outcome_listeners):
                try:
                    listener(outcome)
                except Exception:
                    logger.exception("Outcome listener %r failed for table %s", listener, self.target.table_id)
        finally:
            self._done.set()
