from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping

from tablecase.core.errors import MalformedDataError
from tablecase.domain.models.export import CsvConfig

logger = logging.getLogger(__name__)

METADATA_PREFIX = "_"


class RowStore:
    """In-memory accumulator of every row retrieved for one table.

    The store is filled by a single writer (the paginated fetcher) and then
    read by a single reader (the CSV serializer); the two phases never
    overlap, so no locking is done here.

    The header is computed on the first ``get_header`` call and cached for the
    lifetime of the store. Later calls return the cached header even when a
    different ``CsvConfig`` is passed.
    """

    def __init__(self, table_id: str) -> None:
        self._table_id = table_id
        self._rows: list[dict[str, str | None]] = []
        self._header: list[str] | None = None

    @property
    def table_id(self) -> str:
        return self._table_id

    @property
    def size(self) -> int:
        return len(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    @property
    def rows(self) -> list[dict[str, str | None]]:
        return list(self._rows)

    def try_add(self, page_rows: Iterable[object]) -> int:
        """Append one page of raw records in order and return how many were added.

        Raises ``MalformedDataError`` on the first record that is not a mapping
        of ``str`` to ``str | None``. Records preceding it stay in the store.
        """
        added = 0
        for page_index, record in enumerate(page_rows):
            self._rows.append(self._validated(record, page_index))
            added += 1
        logger.debug("Added %s rows to store for table %s (size=%s)", added, self._table_id, self.size)
        return added

    def _validated(self, record: object, page_index: int) -> dict[str, str | None]:
        position = self.size
        if not isinstance(record, Mapping):
            raise MalformedDataError(
                f"Row {page_index} of page (store position {position}) is not a mapping: "
                f"{type(record).__name__}",
                record_index=position,
                record=record,
            )
        cleaned: dict[str, str | None] = {}
        for key, value in record.items():
            if not isinstance(key, str):
                raise MalformedDataError(
                    f"Row {page_index} of page (store position {position}) has a non-string column name: {key!r}",
                    record_index=position,
                    record=record,
                )
            if value is not None and not isinstance(value, str):
                raise MalformedDataError(
                    f"Row {page_index} of page (store position {position}) has a non-string value "
                    f"for column {key!r}: {type(value).__name__}",
                    record_index=position,
                    record=record,
                )
            cleaned[key] = value
        return cleaned

    def get_header(self, config: CsvConfig) -> list[str]:
        if self._header is None:
            self._header = self._derive_header(config)
            logger.debug("Header for table %s fixed to %s", self._table_id, self._header)
        return list(self._header)

    def _derive_header(self, config: CsvConfig) -> list[str]:
        if config.columns:
            return list(config.columns)

        seen: dict[str, None] = {}
        for row in self._rows:
            for key in row:
                seen.setdefault(key, None)

        data_columns = [name for name in seen if not name.startswith(METADATA_PREFIX)]
        if not config.include_metadata:
            return data_columns
        metadata_columns = [name for name in seen if name.startswith(METADATA_PREFIX)]
        return data_columns + metadata_columns

    def iterator(self, config: CsvConfig) -> Iterator[tuple[int, list[str]]]:
        """Yield ``(index, values)`` per row in header order.

        Each call returns a fresh generator, so iteration can be restarted.
        """
        header = self.get_header(config)
        for index, row in enumerate(self._rows):
            yield index, [format_value(row.get(column), config) for column in header]


def format_value(value: str | None, config: CsvConfig) -> str:
    """Render one cell for output.

    ``None`` becomes ``config.null_value``. The ``formatted`` variant is this
    project's own reading of the flag: runs of whitespace, including
    embedded newlines, collapse to a single space.
    """
    if value is None:
        return config.null_value
    if config.formatted:
        return " ".join(value.split())
    return value
