"""Shared fixtures for qualify-pipeline tests."""

from typing import Optional

import pytest

from qualify_core.extractor import DocumentProcessor, IncomeDocumentExtractor
from qualify_core.models import ProcessingMethod
from qualify_core.pdf_parser import DocumentText
from qualify_core.storage import InMemoryCRMRecords, InMemoryDocumentStore

from qualify_pipeline.config import OCRConfig, PipelineConfig, QualifyConfig
from qualify_pipeline.orchestrator import IncomePipeline

PDF_HEADER = b"%PDF-1.4\n"

PAY_STUB_TEXT = """ACME WIDGETS LLC
EARNINGS STATEMENT
Employer: Acme Widgets LLC
Pay Period: 09/16/2025 - 09/30/2025
Pay Date: 10/03/2025
Pay Frequency: Semi-Monthly
Gross Pay 2,500.00 45,000.00
Net Pay 1,900.00 34,200.00
"""

W2_TEXT = """Form W-2 Wage and Tax Statement 2024
Employer's name: Acme Widgets LLC
1 Wages, tips, other compensation 58,000.00
2 Federal income tax withheld 6,200.00
"""

SCHEDULE_C_TEXT = """SCHEDULE C (Form 1040) 2024
Profit or Loss From Business (Sole Proprietorship)
Business name: Borrower Consulting LLC
1 Gross receipts or sales 150,000.00
13 Depreciation and section 179 expense deduction 4,000.00
30 Expenses for business use of your home 2,000.00
31 Net profit or (loss) 72,000.00
"""


class FakePDFReader:
    """Reads the text that follows the PDF header as a single page."""

    def read(self, content: bytes, *, document_id: Optional[str] = None) -> DocumentText:
        text = content[len(PDF_HEADER):].decode("utf-8")
        return DocumentText(pages=[text], method=ProcessingMethod.DIRECT_TEXT)


class FakeOCREngine:
    """Returns canned OCR text and counts calls."""

    def __init__(self, text: str = ""):
        self.text = text
        self.calls = 0

    def extract_text(self, content: bytes, mime_type: str) -> list[str]:
        self.calls += 1
        return [self.text]


def pdf(text: str) -> bytes:
    return PDF_HEADER + text.encode("utf-8")


@pytest.fixture
def config() -> QualifyConfig:
    return QualifyConfig(
        env="test",
        ocr=OCRConfig(enabled=False),
        pipeline=PipelineConfig(),
    )


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def crm() -> InMemoryCRMRecords:
    return InMemoryCRMRecords()


@pytest.fixture
def make_pipeline(store, crm, config):
    """Pipeline over the shared store, reading PDFs with the fake reader."""
    def _build(
        ocr_engine: Optional[FakeOCREngine] = None,
        config: QualifyConfig = config,
    ) -> IncomePipeline:
        extractor = IncomeDocumentExtractor(pdf_reader=FakePDFReader(), ocr_engine=ocr_engine)
        return IncomePipeline(
            store,
            crm=crm,
            config=config,
            processor=DocumentProcessor(extractor=extractor),
        )
    return _build


@pytest.fixture
def pdf_bytes():
    """Build PDF-signed bytes whose readable text is ``text``."""
    return pdf


@pytest.fixture
def make_ocr_engine():
    """OCR engine factory returning canned text."""
    return FakeOCREngine


@pytest.fixture
def pay_stub_text() -> str:
    return PAY_STUB_TEXT


@pytest.fixture
def w2_text() -> str:
    return W2_TEXT


@pytest.fixture
def schedule_c_text() -> str:
    return SCHEDULE_C_TEXT
