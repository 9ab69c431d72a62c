from __future__ import annotations

import csv
import logging
import os
from pathlib import Path
from typing import Callable, TextIO

from tablecase.application.services.progress import ProgressChannel
from tablecase.core.errors import ExportCancelledError, WriteError
from tablecase.domain.models.export import CsvConfig
from tablecase.infrastructure.store.row_store import RowStore

logger = logging.getLogger(__name__)

PROCESSING_ROWS = "Processing and writing data"
CSV_LINE_TERMINATOR = "\r\n"


class CsvSerializer:
    def __init__(
        self,
        progress: ProgressChannel,
        cancellation_check: Callable[[], bool] | None = None,
    ) -> None:
        self.progress = progress
        self._cancellation_check = cancellation_check

    def write_all(
        self,
        store: RowStore,
        config: CsvConfig,
        destination: str | os.PathLike[str] | TextIO,
    ) -> int:
        """Write the header and every row of *store* as RFC 4180 CSV.

        A path destination is truncated, written as UTF-8 and always closed.
        An open stream is flushed but left open for the caller. Local I/O
        failures surface as ``WriteError``. Returns the number of data rows.
        """
        self.progress.publish(0, PROCESSING_ROWS, False)

        if isinstance(destination, (str, os.PathLike)):
            path = Path(destination)
            try:
                with path.open("w", encoding="utf-8", newline="") as handle:
                    written = self._write_rows(store, config, handle)
            except OSError as exc:
                raise WriteError(f"Failed writing CSV to {path}: {exc}") from exc
            logger.info("Wrote %s rows to %s", written, path)
            return written

        try:
            written = self._write_rows(store, config, destination)
            destination.flush()
        except OSError as exc:
            raise WriteError(f"Failed writing CSV stream: {exc}") from exc
        return written

    def _write_rows(self, store: RowStore, config: CsvConfig, handle: TextIO) -> int:
        writer = csv.writer(handle, quoting=csv.QUOTE_MINIMAL, lineterminator=CSV_LINE_TERMINATOR)
        writer.writerow(store.get_header(config))

        size = store.size
        if size == 0:
            # Nothing to iterate; report the empty stage as complete.
            self.progress.publish(100)
            return 0

        written = 0
        for index, values in store.iterator(config):
            self._ensure_not_cancelled(index, size)
            writer.writerow(values)
            written += 1
            self.progress.publish((index + 1) * 100 // size)
        return written

    def _ensure_not_cancelled(self, index: int, size: int) -> None:
        if self._cancellation_check is not None and bool(self._cancellation_check()):
            raise ExportCancelledError(f"CSV write cancelled by control request at row {index}/{size}.")
