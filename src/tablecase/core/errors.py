class TablecaseError(Exception):
    """Base error for all user-facing tablecase exceptions."""


class ValidationError(TablecaseError):
    """Raised when user input or model invariants fail."""


class ExportError(TablecaseError):
    """Raised when a table export cannot complete."""


class RemoteFetchError(ExportError):
    """Raised when the remote endpoint fails or answers outside its protocol."""


class DataFormatError(ExportError):
    """Raised when a row or page cannot be interpreted."""


class MalformedDataError(DataFormatError):
    """Raised when a single row record in a page is malformed."""

    def __init__(self, message: str, *, record_index: int, record: object) -> None:
        super().__init__(message)
        self.record_index = record_index
        self.record = record


class WriteError(ExportError):
    """Raised when the CSV destination cannot be created, written or closed."""


class ExportCancelledError(ExportError):
    """Raised when an export is cancelled by control request."""


class ExportStateError(ExportError):
    """Raised when an export task is reused after it has started."""
