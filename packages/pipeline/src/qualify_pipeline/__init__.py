"""Qualify Pipeline - concurrent borrower income processing."""

from qualify_pipeline.config import (
    OCRConfig,
    PipelineConfig,
    QualifyConfig,
    configure_logging,
)
from qualify_pipeline.orchestrator import IncomePipeline

__version__ = "0.1.0"

__all__ = [
    "OCRConfig",
    "PipelineConfig",
    "QualifyConfig",
    "configure_logging",
    "IncomePipeline",
]
