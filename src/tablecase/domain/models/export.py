from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

RowRecord = Mapping[str, "str | None"]


class ExportState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {ExportState.SUCCEEDED, ExportState.FAILED}


class FailureKind(str, Enum):
    REMOTE_FETCH = "remote_fetch"
    DATA_FORMAT = "data_format"
    WRITE = "write"
    GENERIC = "generic"


FAILURE_MESSAGES: dict[FailureKind, str] = {
    FailureKind.REMOTE_FETCH: "Unable to retrieve rows from the cloud endpoint.",
    FailureKind.DATA_FORMAT: "Row data could not be interpreted.",
    FailureKind.WRITE: "Unable to write the CSV file.",
    FailureKind.GENERIC: "The export did not complete.",
}


@dataclass(frozen=True, slots=True)
class CsvConfig:
    """Formatting options consulted for the header and every output row."""

    columns: tuple[str, ...] | None = None
    include_metadata: bool = False
    formatted: bool = False
    null_value: str = ""


@dataclass(frozen=True, slots=True)
class PageResult:
    rows: list[RowRecord]
    next_cursor: str | None
    has_more: bool


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    percent: int
    stage_label: str | None = None
    indeterminate: bool | None = None
    seq: int = 0
    emitted_at: str | None = None

    def to_payload(self) -> dict[str, object]:
        return {
            "percent": self.percent,
            "stage_label": self.stage_label,
            "indeterminate": self.indeterminate,
            "seq": self.seq,
            "emitted_at": self.emitted_at,
        }


@dataclass(frozen=True, slots=True)
class ExportOutcome:
    ok: bool
    kind: FailureKind | None = None
    message: str | None = None
    output_path: str | None = None
    rows_written: int = 0
    fetched: bool = False

    @classmethod
    def success(cls, *, output_path: str, rows_written: int, fetched: bool) -> ExportOutcome:
        return cls(ok=True, output_path=output_path, rows_written=rows_written, fetched=fetched)

    @classmethod
    def failure(cls, kind: FailureKind, message: str, *, output_path: str | None = None) -> ExportOutcome:
        return cls(ok=False, kind=kind, message=message, output_path=output_path)

    def to_payload(self) -> dict[str, object]:
        return {
            "ok": self.ok,
            "kind": self.kind.value if self.kind is not None else None,
            "message": self.message,
            "output_path": self.output_path,
            "rows_written": self.rows_written,
            "fetched": self.fetched,
        }
