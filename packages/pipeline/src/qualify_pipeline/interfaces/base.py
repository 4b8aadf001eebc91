"""Stage interfaces for the Qualify pipeline.

This module defines the protocols a pipeline stage must satisfy and the
result wrapper every stage returns. Stages are duck-typed through
typing.Protocol: any class with matching methods is compatible.

A stage never raises for document-level problems. Failures are captured in a
StageResult with ERROR status and details naming the document, the stage and
the reason, so the borrower run continues over the remaining documents.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Generic, Optional, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel, Field


# =============================================================================
# TYPE VARIABLES
# =============================================================================

InputT = TypeVar("InputT", contravariant=True)
"""Type variable for stage input types."""

OutputT = TypeVar("OutputT", covariant=True)
"""Type variable for stage output types."""

ResultT = TypeVar("ResultT")
"""Type variable for result data types."""


# =============================================================================
# ENUMERATIONS
# =============================================================================

class StageStatus(str, Enum):
    """Status codes for stage execution results."""

    SUCCESS = "success"
    """Stage completed successfully."""

    PARTIAL = "partial"
    """Stage completed but some inputs failed."""

    ERROR = "error"
    """Stage failed for its input."""

    CANCELLED = "cancelled"
    """Stage was cancelled before completion."""


# =============================================================================
# RESULT MODELS
# =============================================================================

class StageResult(BaseModel, Generic[ResultT]):
    """Standardized wrapper for stage results.

    Attributes:
        status: Execution status
        data: Stage output
        error: Error message if status is ERROR
        error_details: Diagnostic context (document_id, stage, reason)
        started_at: When processing began
        completed_at: When processing finished
        duration_ms: Processing time in milliseconds
        metadata: Additional context about the run
        warnings: Non-fatal issues encountered
        stage_name: Stage that produced this result
    """

    status: StageStatus = Field(
        default=StageStatus.SUCCESS,
        description="Execution status of the stage",
    )
    data: Optional[Any] = Field(
        default=None,
        description="The result data from the stage",
    )
    error: Optional[str] = Field(
        default=None,
        description="Error message if status is ERROR",
    )
    error_details: Optional[dict[str, Any]] = Field(
        default=None,
        description="Document id, stage and reason for the failure",
    )
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = Field(default=None, ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    stage_name: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.status == StageStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status == StageStatus.ERROR

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    @classmethod
    def success(
        cls,
        data: Any,
        *,
        stage_name: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        warnings: Optional[list[str]] = None,
    ) -> StageResult[Any]:
        """Create a successful result with the given data."""
        return cls(
            status=StageStatus.SUCCESS,
            data=data,
            stage_name=stage_name,
            metadata=metadata or {},
            warnings=warnings or [],
        )

    @classmethod
    def error(
        cls,
        message: str,
        *,
        data: Any = None,
        details: Optional[dict[str, Any]] = None,
        stage_name: Optional[str] = None,
    ) -> StageResult[Any]:
        """Create an error result.

        Args:
            message: The error message
            data: Partial output, such as the failed document
            details: Diagnostic context (document_id, stage, reason)
            stage_name: Name of the stage
        """
        return cls(
            status=StageStatus.ERROR,
            data=data,
            error=message,
            error_details=details,
            stage_name=stage_name,
        )


# =============================================================================
# STAGE PROTOCOL
# =============================================================================

@runtime_checkable
class StageProtocol(Protocol[InputT, OutputT]):
    """Contract for one pipeline stage.

    Example:
        ```python
        class EchoStage:
            name = "echo"

            async def run(self, job: DocumentJob) -> StageResult[DocumentJob]:
                return StageResult.success(job, stage_name=self.name)

            def validate_input(self, job: DocumentJob) -> bool:
                return job is not None
        ```
    """

    name: str

    async def run(self, input_data: InputT) -> StageResult[OutputT]:
        """Run the stage. Must not raise; failures are returned as ERROR results."""
        ...

    def validate_input(self, input_data: InputT) -> bool:
        """Check the input before running."""
        ...


# =============================================================================
# PIPELINE PROTOCOL
# =============================================================================

@runtime_checkable
class PipelineProtocol(Protocol):
    """Contract for a borrower income pipeline."""

    async def process_borrower(self, borrower_id: str, agency: Any = None) -> Any:
        """Process pending documents and recalculate income for one borrower."""
        ...

    async def reprocess(self, document_id: str, force_ocr: bool = True) -> Any:
        """Re-run extraction for one document, then recalculate."""
        ...


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "InputT",
    "OutputT",
    "ResultT",
    "StageStatus",
    "StageResult",
    "StageProtocol",
    "PipelineProtocol",
]
