"""Pipeline stages.

DocumentStage runs one document through the DocumentProcessor in a worker
thread (text extraction and OCR block). CalculationStage runs the income
calculation for a borrower once all of their documents are terminal.
"""

import asyncio
import time
from datetime import datetime, timezone

import structlog

from qualify_core.exceptions import QualifyError
from qualify_core.extractor import DocumentProcessor
from qualify_core.models.documents import FailureKind, IncomeDocument
from qualify_core.models.income import IncomeCalculation
from qualify_core.qualifier import IncomeQualifier

from qualify_pipeline.interfaces.base import StageResult
from qualify_pipeline.interfaces.types import CalculationRequest, DocumentJob

logger = structlog.get_logger()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _timed(result: StageResult, started_at: datetime, started: float) -> StageResult:
    return result.model_copy(update={
        "started_at": started_at,
        "completed_at": _utc_now(),
        "duration_ms": (time.perf_counter() - started) * 1000,
    })


class DocumentStage:
    """Classify and extract one document."""

    name = "document"

    def __init__(self, processor: DocumentProcessor):
        self.processor = processor

    def validate_input(self, job: DocumentJob) -> bool:
        return isinstance(job, DocumentJob)

    async def run(self, job: DocumentJob) -> StageResult[IncomeDocument]:
        """
        Process the job's document to a terminal state.

        Returns:
            SUCCESS with the processed document, or ERROR with the failed
            document as data and details naming document, stage and reason
        """
        started_at, started = _utc_now(), time.perf_counter()
        log = logger.bind(document_id=job.document_id, stage=self.name)

        try:
            outcome = await asyncio.to_thread(
                self.processor.process,
                job.document,
                job.content,
                job.force_ocr,
                job.mime_type,
            )
        except QualifyError as e:
            log.error("document_stage_rejected", error=e.message)
            return _timed(StageResult.error(
                e.message,
                data=job.document,
                details={"document_id": job.document_id, "stage": self.name, "reason": e.message},
                stage_name=self.name,
            ), started_at, started)
        except Exception as e:
            log.exception("document_stage_crashed")
            failed = self._fail_unexpected(job.document, e)
            return _timed(StageResult.error(
                f"Unexpected processing error: {e}",
                data=failed,
                details={"document_id": job.document_id, "stage": self.name, "reason": repr(e)},
                stage_name=self.name,
            ), started_at, started)

        document = outcome.document
        if outcome.succeeded:
            return _timed(StageResult.success(
                document,
                stage_name=self.name,
                metadata={
                    "final_type": document.effective_type.value,
                    "confidence": document.confidence,
                    "ocr_used": document.diagnostics.ocr_used,
                },
            ), started_at, started)

        return _timed(StageResult.error(
            outcome.error.message,
            data=document,
            details={
                "document_id": document.id,
                "stage": document.diagnostics.failure_stage,
                "reason": document.failure_reason,
                "failure_kind": (
                    document.diagnostics.failure_kind.value
                    if document.diagnostics.failure_kind else None
                ),
                "recoverable": outcome.error.recoverable,
            },
            stage_name=self.name,
        ), started_at, started)

    @staticmethod
    def _fail_unexpected(document: IncomeDocument, error: Exception) -> IncomeDocument:
        failed = document.model_copy(deep=True)
        failed.start_processing()
        failed.mark_failed(
            f"Unexpected processing error: {error}",
            failure_kind=FailureKind.EXTRACTION_EMPTY,
            stage="extraction",
        )
        return failed


class CalculationStage:
    """Calculate qualifying income from a borrower's terminal documents."""

    name = "calculation"

    def __init__(self, qualifier: IncomeQualifier):
        self.qualifier = qualifier

    def validate_input(self, request: CalculationRequest) -> bool:
        return isinstance(request, CalculationRequest)

    async def run(self, request: CalculationRequest) -> StageResult[IncomeCalculation]:
        started_at, started = _utc_now(), time.perf_counter()
        try:
            calculation = self.qualifier.calculate(
                request.borrower_id, request.documents, request.agency
            )
        except QualifyError as e:
            logger.error(
                "calculation_stage_failed",
                borrower_id=request.borrower_id,
                error=e.message,
            )
            return _timed(StageResult.error(
                e.message,
                details={**e.details, "borrower_id": request.borrower_id, "stage": self.name},
                stage_name=self.name,
            ), started_at, started)

        return _timed(StageResult.success(
            calculation,
            stage_name=self.name,
            warnings=list(calculation.warnings),
        ), started_at, started)
