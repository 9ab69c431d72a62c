from __future__ import annotations

import logging
from typing import Callable, Protocol

from tablecase.application.services.progress import ProgressChannel
from tablecase.core.errors import ExportCancelledError
from tablecase.domain.models.export import PageResult
from tablecase.infrastructure.store.row_store import RowStore

logger = logging.getLogger(__name__)

RETRIEVING_ROWS = "Retrieving rows"


class RowPageClient(Protocol):
    def fetch_row_page(self, table_id: str, cursor: str | None) -> PageResult: ...


class PaginatedFetcher:
    """Pulls every page of a remote table into a ``RowStore``.

    The loop follows the endpoint's continuation cursor until a page reports
    ``has_more`` false. There is no page cap: an endpoint that never ends its
    pagination keeps the fetch running.
    """

    def __init__(
        self,
        client: RowPageClient,
        store: RowStore,
        progress: ProgressChannel,
        cancellation_check: Callable[[], bool] | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.progress = progress
        self._cancellation_check = cancellation_check

    def fetch(self, table_id: str) -> int:
        """Fetch all pages for *table_id* and return the number of pages requested."""
        self.progress.publish(0, RETRIEVING_ROWS, True)

        cursor: str | None = None
        pages = 0
        while True:
            self._ensure_not_cancelled(pages)
            page = self.client.fetch_row_page(table_id, cursor)
            pages += 1
            added = self.store.try_add(page.rows)
            logger.debug(
                "Fetched page %s for table %s: rows=%s next_cursor=%r has_more=%s",
                pages,
                table_id,
                added,
                page.next_cursor,
                page.has_more,
            )
            cursor = page.next_cursor
            if not page.has_more:
                break

        logger.info("Retrieved %s rows for table %s in %s pages", self.store.size, table_id, pages)
        return pages

    def _ensure_not_cancelled(self, pages: int) -> None:
        if self._cancellation_check is not None and bool(self._cancellation_check()):
            raise ExportCancelledError(f"Row retrieval cancelled by control request after {pages} pages.")
