"""Per-borrower income pipeline.

Scheduling:
- Borrowers are independent and run in parallel, bounded by a semaphore.
- Within a borrower, pending and failed documents are processed concurrently
  (bounded by that borrower's semaphore); calculation waits for all of them.
- At most one run per borrower is in flight. Runs and reprocess requests for
  the same borrower queue on that borrower's lock. A borrower's lock and
  document semaphore are dropped once no run for it is active or waiting.
- Each document is written only by the task processing it, and only once
  it reaches a terminal state.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, Iterable, Optional

import structlog

from qualify_core.exceptions import DocumentNotFoundError
from qualify_core.extractor import DocumentProcessor, IncomeDocumentExtractor
from qualify_core.models.documents import OcrStatus
from qualify_core.models.income import Agency
from qualify_core.pdf_parser import OCREngine, TesseractOCREngine
from qualify_core.qualifier import IncomeQualifier
from qualify_core.storage import CRMRecordWriter, InMemoryDocumentStore

from qualify_pipeline.config import QualifyConfig, configure_logging
from qualify_pipeline.interfaces.base import StageResult
from qualify_pipeline.interfaces.types import (
    BorrowerRunResult,
    CalculationRequest,
    DocumentFailure,
    DocumentJob,
    ReprocessResult,
)
from qualify_pipeline.stages import CalculationStage, DocumentStage

logger = structlog.get_logger()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _BorrowerSlot:
    """Lock and document semaphore shared by the runs of one borrower."""
    lock: asyncio.Lock
    document_slots: asyncio.Semaphore
    users: int = 0


class IncomePipeline:
    """
    Process borrower documents and keep qualifying income current.

    Example:
        store = InMemoryDocumentStore()
        pipeline = IncomePipeline(store, crm=InMemoryCRMRecords())
        store.upload("b-1", "paystub.pdf", content)
        result = await pipeline.process_borrower("b-1", Agency.FHA)
    """

    def __init__(
        self,
        store: InMemoryDocumentStore,
        crm: Optional[CRMRecordWriter] = None,
        config: Optional[QualifyConfig] = None,
        processor: Optional[DocumentProcessor] = None,
        qualifier: Optional[IncomeQualifier] = None,
        ocr_engine: Optional[OCREngine] = None,
        setup_logging: bool = False,
    ):
        self.store = store
        self.crm = crm
        self.config = config or QualifyConfig()
        if setup_logging:
            configure_logging(self.config)

        self.document_stage = DocumentStage(processor or self._build_processor(ocr_engine))
        self.calculation_stage = CalculationStage(
            qualifier or IncomeQualifier(confidence_floor=self.config.pipeline.confidence_floor)
        )

        self._borrowers: dict[str, _BorrowerSlot] = {}
        self._borrower_slots = asyncio.Semaphore(self.config.pipeline.max_concurrent_borrowers)

    def _build_processor(self, ocr_engine: Optional[OCREngine]) -> DocumentProcessor:
        ocr = self.config.ocr
        if ocr_engine is None and ocr.enabled:
            ocr_engine = TesseractOCREngine(
                dpi=ocr.dpi,
                language=ocr.language,
                tesseract_cmd=ocr.tesseract_cmd,
            )
        extractor = IncomeDocumentExtractor(
            ocr_engine=ocr_engine if ocr.enabled else None,
            ocr_penalty=ocr.penalty,
            min_chars_per_page=ocr.min_text_chars_per_page,
        )
        return DocumentProcessor(extractor=extractor)

    @asynccontextmanager
    async def _exclusive(self, borrower_id: str) -> AsyncIterator[_BorrowerSlot]:
        """Hold the borrower's lock; the slot is dropped when its last user leaves."""
        # No await between lookup and insert, so this is safe on one loop
        slot = self._borrowers.get(borrower_id)
        if slot is None:
            slot = _BorrowerSlot(
                lock=asyncio.Lock(),
                document_slots=asyncio.Semaphore(self.config.pipeline.max_concurrent_documents),
            )
            self._borrowers[borrower_id] = slot
        slot.users += 1
        try:
            async with slot.lock:
                yield slot
        finally:
            slot.users -= 1
            if slot.users == 0:
                del self._borrowers[borrower_id]

    @property
    def active_borrowers(self) -> int:
        """Borrowers with a run in flight or queued."""
        return len(self._borrowers)

    def _resolve_agency(self, borrower_id: str, agency: Optional[Agency | str]) -> Agency:
        if agency is not None:
            return Agency(agency)
        latest = self.store.latest_calculation(borrower_id)
        if latest is not None:
            return latest.agency
        return Agency(self.config.pipeline.default_agency)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def process_borrower(
        self,
        borrower_id: str,
        agency: Optional[Agency | str] = None,
    ) -> BorrowerRunResult:
        """
        Process outstanding documents and recalculate income for a borrower.

        Pending and failed documents are processed concurrently; successful
        documents are left as they are. Calculation runs after every
        document is terminal.
        """
        agency = self._resolve_agency(borrower_id, agency)
        async with self._exclusive(borrower_id) as slot:
            log = logger.bind(borrower_id=borrower_id, agency=agency.value)
            started_at = _utc_now()

            jobs = []
            for document in self.store.get_documents(borrower_id):
                if document.ocr_status in (OcrStatus.PENDING, OcrStatus.FAILED):
                    content, mime_type = self.store.get_content(document.id)
                    jobs.append(DocumentJob(document=document, content=content, mime_type=mime_type))

            log.info("borrower_run_started", documents=len(jobs))
            results = await asyncio.gather(*(self._process_document(job, slot) for job in jobs))

            run = await self._calculate(borrower_id, agency, started_at)
            run.processed_document_ids = [job.document_id for job in jobs]
            run.failures = [self._failure(r) for r in results if r.is_error]
            log.info(
                "borrower_run_completed",
                processed=len(jobs),
                failed=len(run.failures),
                result_monthly_income=str(run.result_monthly_income),
            )
            return run

    async def reprocess(
        self,
        document_id: str,
        force_ocr: bool = True,
        agency: Optional[Agency | str] = None,
    ) -> ReprocessResult:
        """
        Re-run extraction for one document, then recalculate its borrower.

        Waits for any in-flight run for the same borrower. Sibling documents
        are not touched; the recalculation uses their stored state.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        document = self.store.get_document(document_id)
        borrower_id = document.borrower_id
        self.store.record_event(
            borrower_id, "reprocess_requested", document_id=document_id, force_ocr=force_ocr
        )

        agency = self._resolve_agency(borrower_id, agency)
        async with self._exclusive(borrower_id) as slot:
            started_at = _utc_now()
            try:
                document = self.store.get_document(document_id)
            except DocumentNotFoundError:
                logger.warning("reprocess_document_gone", document_id=document_id)
                raise

            content, mime_type = self.store.get_content(document_id)
            result = await self._process_document(DocumentJob(
                document=document,
                content=content,
                mime_type=mime_type,
                force_ocr=force_ocr,
            ), slot)
            run = await self._calculate(borrower_id, agency, started_at)
            run.processed_document_ids = [document_id]
            if result.is_error:
                run.failures = [self._failure(result)]

        logger.info(
            "document_reprocessed",
            document_id=document_id,
            force_ocr=force_ocr,
            status=result.data.ocr_status.value,
        )
        return ReprocessResult(
            document_id=document_id,
            borrower_id=borrower_id,
            succeeded=result.is_success,
            document=result.data,
            error=result.error,
            run=run,
        )

    async def process_borrowers(
        self,
        borrower_ids: Iterable[str],
        agency: Optional[Agency | str] = None,
    ) -> list[BorrowerRunResult]:
        """Run independent borrowers in parallel, in the order given."""

        async def bounded(borrower_id: str) -> BorrowerRunResult:
            async with self._borrower_slots:
                return await self.process_borrower(borrower_id, agency)

        return list(await asyncio.gather(*(bounded(b) for b in borrower_ids)))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _process_document(self, job: DocumentJob, slot: _BorrowerSlot) -> StageResult:
        async with slot.document_slots:
            result = await self.document_stage.run(job)
        document = result.data
        self.store.save_document(
            document,
            action="document_processed" if result.is_success else "document_failed",
        )
        if result.is_error:
            logger.warning(
                "document_stage_failed",
                document_id=job.document_id,
                stage=(result.error_details or {}).get("stage"),
                reason=result.error,
            )
        return result

    async def _calculate(
        self,
        borrower_id: str,
        agency: Agency,
        started_at: datetime,
    ) -> BorrowerRunResult:
        documents = self.store.get_documents(borrower_id)
        result = await self.calculation_stage.run(
            CalculationRequest(borrower_id=borrower_id, agency=agency, documents=documents)
        )
        run = BorrowerRunResult(borrower_id=borrower_id, agency=agency, started_at=started_at)
        if result.is_error:
            run.error = result.error
            run.completed_at = _utc_now()
            return run

        calculation = result.data
        self.store.save_calculation(calculation)
        run.calculation = calculation

        if self.crm is not None and self.config.pipeline.update_crm:
            self.crm.update_qualifying_income(borrower_id, calculation.result_monthly_income)
            run.crm_updated = True

        run.completed_at = _utc_now()
        return run

    @staticmethod
    def _failure(result: StageResult) -> DocumentFailure:
        details = result.error_details or {}
        return DocumentFailure(
            document_id=result.data.id,
            file_name=result.data.file_name,
            stage=details.get("stage"),
            reason=result.error or "unknown",
        )
