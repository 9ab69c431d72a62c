import csv
import io
from pathlib import Path

import pytest

from tablecase.application.services.csv_writer_service import CsvSerializer
from tablecase.application.services.progress import ProgressChannel, ProgressRecorder
from tablecase.core.errors import ExportCancelledError, WriteError
from tablecase.domain.models.export import CsvConfig
from tablecase.infrastructure.store.row_store import RowStore


def _store(rows: list[dict[str, str | None]]) -> RowStore:
    store = RowStore("census")
    store.try_add(rows)
    return store


def _serializer() -> tuple[CsvSerializer, ProgressRecorder]:
    progress = ProgressChannel()
    recorder = ProgressRecorder()
    progress.subscribe(recorder)
    return CsvSerializer(progress), recorder


def test_write_all_escapes_delimiter_quotes_and_line_breaks(tmp_path: Path) -> None:
    out = tmp_path / "out.csv"
    store = _store(
        [
            {"id": "1", "name": "A,B"},
            {"id": "2", "name": 'say "hi"'},
            {"id": "3", "name": "two\nlines"},
            {"id": "4", "name": "plain"},
        ]
    )
    serializer, _ = _serializer()

    written = serializer.write_all(store, CsvConfig(), out)

    assert written == 4
    raw = out.read_bytes().decode("utf-8")
    assert raw == (
        "id,name\r\n"
        '1,"A,B"\r\n'
        '2,"say ""hi"""\r\n'
        '3,"two\nlines"\r\n'
        "4,plain\r\n"
    )


def test_escaped_output_round_trips_through_csv_reader(tmp_path: Path) -> None:
    out = tmp_path / "out.csv"
    rows = [
        {"a": "x,y", "b": '"quoted"', "c": "line\r\nbreak"},
        {"a": "ünïcödé", "b": "", "c": "tab\tok"},
    ]
    serializer, _ = _serializer()
    serializer.write_all(_store(rows), CsvConfig(), out)

    with out.open("r", encoding="utf-8", newline="") as handle:
        parsed = list(csv.reader(handle))

    assert parsed[0] == ["a", "b", "c"]
    assert parsed[1:] == [[row["a"], row["b"], row["c"]] for row in rows]


def test_write_progress_is_monotonic_and_ends_at_100(tmp_path: Path) -> None:
    store = _store([{"id": str(i)} for i in range(7)])
    serializer, recorder = _serializer()

    serializer.write_all(store, CsvConfig(), tmp_path / "out.csv")

    stage, *rows = recorder.events
    assert (stage.percent, stage.stage_label, stage.indeterminate) == (0, "Processing and writing data", False)
    percents = [event.percent for event in rows]
    assert len(percents) == 7
    assert percents == sorted(percents)
    assert percents[-1] == 100
    assert all(event.stage_label is None and event.indeterminate is None for event in rows)


def test_zero_rows_writes_header_only_and_reports_100(tmp_path: Path) -> None:
    out = tmp_path / "out.csv"
    serializer, recorder = _serializer()

    written = serializer.write_all(RowStore("empty"), CsvConfig(columns=("id", "name")), out)

    assert written == 0
    assert out.read_text(encoding="utf-8").splitlines() == ["id,name"]
    assert [event.percent for event in recorder.events] == [0, 100]


def test_write_truncates_existing_content(tmp_path: Path) -> None:
    out = tmp_path / "out.csv"
    out.write_text("stale\r\n" * 50, encoding="utf-8")
    serializer, _ = _serializer()

    serializer.write_all(_store([{"id": "1"}]), CsvConfig(), out)

    assert out.read_text(encoding="utf-8") == "id\n1\n"


def test_stream_destination_is_flushed_but_not_closed() -> None:
    buffer = io.StringIO()
    serializer, _ = _serializer()

    serializer.write_all(_store([{"id": "1"}]), CsvConfig(), buffer)

    assert not buffer.closed
    assert buffer.getvalue() == "id\r\n1\r\n"


def test_unwritable_destination_raises_write_error(tmp_path: Path) -> None:
    serializer, _ = _serializer()
    with pytest.raises(WriteError, match="Failed writing CSV"):
        serializer.write_all(_store([{"id": "1"}]), CsvConfig(), tmp_path / "missing" / "out.csv")


def test_failing_stream_raises_write_error() -> None:
    class BrokenStream(io.StringIO):
        def write(self, s: str) -> int:
            raise OSError("disk full")

    serializer, _ = _serializer()
    with pytest.raises(WriteError, match="disk full"):
        serializer.write_all(_store([{"id": "1"}]), CsvConfig(), BrokenStream())


def test_cancellation_mid_write_closes_file(tmp_path: Path) -> None:
    out = tmp_path / "out.csv"
    checks = iter([False, True, True])
    serializer = CsvSerializer(ProgressChannel(), cancellation_check=lambda: next(checks))

    with pytest.raises(ExportCancelledError):
        serializer.write_all(_store([{"id": "1"}, {"id": "2"}, {"id": "3"}]), CsvConfig(), out)

    # The handle was closed, so the partial content is on disk.
    assert out.read_text(encoding="utf-8").splitlines() == ["id", "1"]
