import pytest

from tablecase.application.services.fetch_service import PaginatedFetcher
from tablecase.application.services.progress import ProgressChannel, ProgressRecorder
from tablecase.core.errors import ExportCancelledError, RemoteFetchError
from tablecase.domain.models.export import PageResult
from tablecase.infrastructure.store.row_store import RowStore


class FakePageClient:
    def __init__(self, pages: list[PageResult], fail_on_call: int | None = None) -> None:
        self.pages = pages
        self.fail_on_call = fail_on_call
        self.calls: list[tuple[str, str | None]] = []

    def fetch_row_page(self, table_id: str, cursor: str | None) -> PageResult:
        self.calls.append((table_id, cursor))
        if self.fail_on_call == len(self.calls):
            raise RemoteFetchError("connection reset")
        return self.pages[len(self.calls) - 1]


def _pages() -> list[PageResult]:
    return [
        PageResult(rows=[{"id": "1"}, {"id": "2"}], next_cursor="a", has_more=True),
        PageResult(rows=[{"id": "3"}, {"id": "4"}], next_cursor="b", has_more=True),
        PageResult(rows=[{"id": "5"}, {"id": "6"}], next_cursor=None, has_more=False),
    ]


def test_fetch_follows_cursor_until_has_more_is_false() -> None:
    client = FakePageClient(_pages())
    store = RowStore("census")
    fetcher = PaginatedFetcher(client, store, ProgressChannel())

    pages = fetcher.fetch("census")

    assert pages == 3
    assert client.calls == [("census", None), ("census", "a"), ("census", "b")]
    assert [row["id"] for row in store.rows] == ["1", "2", "3", "4", "5", "6"]


def test_fetch_emits_single_indeterminate_stage_event() -> None:
    progress = ProgressChannel()
    recorder = ProgressRecorder()
    progress.subscribe(recorder)

    PaginatedFetcher(FakePageClient(_pages()), RowStore("census"), progress).fetch("census")

    assert len(recorder.events) == 1
    event = recorder.events[0]
    assert (event.percent, event.stage_label, event.indeterminate) == (0, "Retrieving rows", True)


def test_fetch_failure_on_second_page_keeps_first_page_rows() -> None:
    client = FakePageClient(_pages(), fail_on_call=2)
    store = RowStore("census")

    with pytest.raises(RemoteFetchError):
        PaginatedFetcher(client, store, ProgressChannel()).fetch("census")

    assert len(client.calls) == 2
    assert [row["id"] for row in store.rows] == ["1", "2"]


def test_fetch_stops_between_pages_when_cancelled() -> None:
    client = FakePageClient(_pages())
    store = RowStore("census")
    checks = iter([False, True])

    with pytest.raises(ExportCancelledError):
        PaginatedFetcher(client, store, ProgressChannel(), cancellation_check=lambda: next(checks)).fetch("census")

    assert len(client.calls) == 1
    assert store.size == 2
