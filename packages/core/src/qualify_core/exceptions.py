"""Custom exceptions for the income qualification engine.

This module provides a hierarchy of exception classes for consistent error
handling across the classify -> extract -> compute pipeline. All exceptions
inherit from QualifyError, making it easy to catch all engine-specific errors.

Example:
    try:
        text = extractor.load_text(content, mime_type)
    except IngestionError as e:
        # File cannot be read at all - mark the document failed
        document.mark_failed(e.reason, failure_kind=FailureKind.INGESTION_ERROR)
    except QualifyError as e:
        logger.error("processing_failed", error=str(e), **e.details)
"""

from typing import Any, Optional


class QualifyError(Exception):
    """Base exception for all income qualification errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context.
        recoverable: Whether the error is potentially recoverable.

    Example:
        >>> raise QualifyError("Something went wrong", details={"stage": "extract"})
        QualifyError: Something went wrong
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        """Initialize QualifyError.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional context about the error.
            recoverable: Whether the error is potentially recoverable through
                retry or alternative approaches. Defaults to False.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        """Return string representation of the error."""
        return self.message

    def __repr__(self) -> str:
        """Return detailed representation of the error."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable!r})"
        )


class IngestionError(QualifyError):
    """Error raised when an uploaded file cannot be ingested.

    Covers unreadable files and unsupported MIME types. A document that
    fails ingestion is marked failed immediately and is never classified.

    Attributes:
        document_id: Identifier of the document being ingested.
        mime_type: MIME type that was detected or declared.
        reason: Short machine-friendly reason (e.g. "unsupported_mime").

    Example:
        >>> raise IngestionError(
        ...     "Unsupported file type: text/csv",
        ...     document_id="doc-1",
        ...     mime_type="text/csv",
        ...     reason="unsupported_mime",
        ... )
        IngestionError: Unsupported file type: text/csv
    """

    def __init__(
        self,
        message: str,
        *,
        document_id: Optional[str] = None,
        mime_type: Optional[str] = None,
        reason: str = "unreadable",
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        """Initialize IngestionError.

        Args:
            message: Human-readable error description.
            document_id: Identifier of the document that failed ingestion.
            mime_type: The MIME type involved, if known.
            reason: Short reason code stored in document diagnostics.
            details: Optional dictionary with additional context.
            recoverable: Defaults to False since the file itself must be
                replaced before ingestion can succeed.
        """
        super().__init__(message, details=details, recoverable=recoverable)
        self.document_id = document_id
        self.mime_type = mime_type
        self.reason = reason

        self.details["stage"] = "ingestion"
        self.details["reason"] = reason
        if document_id:
            self.details["document_id"] = document_id
        if mime_type:
            self.details["mime_type"] = mime_type


class ExtractionError(QualifyError):
    """Error raised when document data extraction fails.

    Attributes:
        document_id: The document that failed extraction.
        field: The specific field that failed to extract (if applicable).
        document_type: Type of document being processed (if known).

    Example:
        >>> raise ExtractionError(
        ...     "OCR engine unavailable",
        ...     document_id="doc-7",
        ...     document_type="w2",
        ... )
        ExtractionError: OCR engine unavailable
    """

    def __init__(
        self,
        message: str,
        *,
        document_id: Optional[str] = None,
        field: Optional[str] = None,
        document_type: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = True,
    ) -> None:
        """Initialize ExtractionError.

        Args:
            message: Human-readable error description.
            document_id: The document identifier being processed.
            field: The specific field that failed extraction.
            document_type: Type of document (e.g., "w2", "schedule_c").
            details: Optional dictionary with additional context.
            recoverable: Whether extraction can be retried. Defaults to True
                since reprocessing with OCR may succeed.
        """
        super().__init__(message, details=details, recoverable=recoverable)
        self.document_id = document_id
        self.field = field
        self.document_type = document_type

        self.details["stage"] = "extraction"
        if document_id:
            self.details["document_id"] = document_id
        if field:
            self.details["field"] = field
        if document_type:
            self.details["document_type"] = document_type


class ValidationError(QualifyError):
    """Error raised when data validation fails.

    Attributes:
        field: The field that failed validation.
        value: The invalid value (if safe to include).
        constraint: The validation constraint that was violated.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        constraint: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = True,
    ) -> None:
        """Initialize ValidationError.

        Args:
            message: Human-readable error description.
            field: The name of the field that failed validation.
            value: The invalid value.
            constraint: Description of the validation rule violated.
            details: Optional dictionary with additional context.
            recoverable: Defaults to True since validation errors typically
                require caller correction.
        """
        super().__init__(message, details=details, recoverable=recoverable)
        self.field = field
        self.value = value
        self.constraint = constraint

        if field:
            self.details["field"] = field
        if value is not None:
            self.details["value"] = value
        if constraint:
            self.details["constraint"] = constraint


class InvalidTransitionError(ValidationError):
    """Error raised for an illegal OCR status transition.

    Example:
        >>> raise InvalidTransitionError("pending", "success", document_id="doc-2")
        InvalidTransitionError: Cannot move document doc-2 from pending to success
    """

    def __init__(
        self,
        current: str,
        target: str,
        *,
        document_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Cannot move document {document_id or '?'} from {current} to {target}",
            field="ocr_status",
            value=current,
            constraint=f"transition to {target} not allowed",
            details={"document_id": document_id} if document_id else None,
        )
        self.current = current
        self.target = target


class DocumentNotFoundError(QualifyError):
    """Error raised when a document id is unknown to the store."""

    def __init__(self, document_id: str) -> None:
        super().__init__(
            f"Document not found: {document_id}",
            details={"document_id": document_id},
        )
        self.document_id = document_id


class DocumentInUseError(QualifyError):
    """Error raised when hard-deleting a document referenced by a calculation."""

    def __init__(self, document_id: str, calculation_ids: list[str]) -> None:
        super().__init__(
            f"Document {document_id} is referenced by {len(calculation_ids)} "
            "calculation(s); use soft removal instead",
            details={"document_id": document_id, "calculation_ids": calculation_ids},
            recoverable=True,
        )
        self.document_id = document_id
        self.calculation_ids = calculation_ids


class ConfigurationError(QualifyError):
    """Error raised when configuration is invalid or missing.

    Attributes:
        config_key: The configuration key that is problematic.
        expected: Description of the expected value or format.
        actual: The actual value found (if any).
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[Any] = None,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message, details=details, recoverable=recoverable)
        self.config_key = config_key
        self.expected = expected
        self.actual = actual

        if config_key:
            self.details["config_key"] = config_key
        if expected:
            self.details["expected"] = expected
        if actual is not None:
            self.details["actual"] = actual


class ReportError(QualifyError):
    """Error raised when a worksheet cannot be rendered."""


__all__ = [
    "QualifyError",
    "IngestionError",
    "ExtractionError",
    "ValidationError",
    "InvalidTransitionError",
    "DocumentNotFoundError",
    "DocumentInUseError",
    "ConfigurationError",
    "ReportError",
]
