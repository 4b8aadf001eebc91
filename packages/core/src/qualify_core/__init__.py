"""Qualify Core - Borrower income classification, extraction and qualification."""

__version__ = "0.1.0"

from .qualifier import IncomeQualifier
from .extractor import DocumentProcessor
from .models import IncomeCalculation, IncomeComponent, IncomeDocument

__all__ = [
    "IncomeQualifier",
    "DocumentProcessor",
    "IncomeCalculation",
    "IncomeComponent",
    "IncomeDocument",
]
