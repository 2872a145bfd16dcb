"""Custom exceptions for the client data service."""


class RecordsException(Exception):
    """Base exception for table access and mutation errors."""
    error_code = "records_error"


class NotFoundError(RecordsException):
    """Backing file, sheet or record is absent (should return 404)."""
    error_code = "not_found"


class SheetMissingError(NotFoundError):
    """The workbook exists but the named sheet does not."""
    error_code = "sheet_missing"


class RecordNotFoundError(NotFoundError):
    """A natural-key lookup matched zero rows."""
    error_code = "record_not_found"


class AmbiguousMatchError(RecordsException):
    """A natural-key lookup matched more than one row (should return 409)."""
    error_code = "ambiguous_match"

    def __init__(self, message: str, match_count: int = 0):
        super().__init__(message)
        self.match_count = match_count


class ValidationError(RecordsException):
    """Caller-supplied payload is missing a field or has the wrong type (should return 400)."""
    error_code = "validation_error"


class MalformedTableError(RecordsException):
    """The sheet cannot be interpreted as a table (should return 422)."""
    error_code = "malformed_table"


class StorageIOError(RecordsException, OSError):
    """Disk read/write failure (should return 500)."""
    error_code = "io_error"


class WriteFailedError(StorageIOError):
    """A save did not persist or could not be verified."""
    error_code = "write_failed"
