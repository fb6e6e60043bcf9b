"""
Exception hierarchy for statement import failures.

Every error that ends an upload carries the HTTP status the upload endpoint
answers with and a message that is safe to show to the user.
"""
from typing import Optional


class StatementError(ValueError):
    """Base class for user-facing import failures."""

    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class SchemaError(StatementError):
    """No usable date/description/amount column was found."""


class EmptyStatementError(StatementError):
    """The file had no rows, or no row survived filtering."""


class StatementParseError(StatementError):
    """The file could not be parsed at all."""


class UnreadablePdfError(StatementError):
    """The PDF has no extractable text (scanned or image-only)."""


class UnsupportedFileError(StatementError):
    """The uploaded file is neither CSV nor PDF."""


class ConfigurationError(StatementError):
    """A required setting (such as the language-model API key) is missing."""


class StorageError(StatementError):
    """The original file could not be archived."""

    status_code = 500


class DuplicateTransactionError(StatementError):
    """A transaction with the same dedupe hash already exists for the user."""

    status_code = 409


class NotFoundError(StatementError):
    status_code = 404


class UploadStateError(RuntimeError):
    """An upload was asked to leave a terminal state."""


class CompletionError(RuntimeError):
    """A language-model completion request failed."""

    RETRYABLE_STATUS = {413, 429}

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: Optional[bool] = None):
        super().__init__(message)
        self.status_code = status_code
        if retryable is None:
            retryable = status_code is not None and (
                status_code in self.RETRYABLE_STATUS or status_code >= 500
            )
        self.retryable = retryable
