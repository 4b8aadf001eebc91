"""Pipeline stage interfaces.

Available Interfaces:
    StageProtocol: Contract for a single pipeline stage
    PipelineProtocol: Contract for borrower pipeline orchestration
    StageResult: Standardized result wrapper for stage outputs
    StageStatus: Enum for execution status codes

Pipeline Data Types:
    DocumentJob: Document stage input
    CalculationRequest: Calculation stage input
    BorrowerRunResult: Outcome of one borrower run
    ReprocessResult: Outcome of a forced reprocess
"""

from qualify_pipeline.interfaces.base import (
    # Type variables
    InputT,
    OutputT,
    ResultT,
    # Enumerations
    StageStatus,
    # Result models
    StageResult,
    # Protocols
    StageProtocol,
    PipelineProtocol,
)

from qualify_pipeline.interfaces.types import (
    DocumentJob,
    CalculationRequest,
    DocumentFailure,
    BorrowerRunResult,
    ReprocessResult,
)

__all__ = [
    # Type variables
    "InputT",
    "OutputT",
    "ResultT",
    # Enumerations
    "StageStatus",
    # Result models
    "StageResult",
    # Protocols
    "StageProtocol",
    "PipelineProtocol",
    # Pipeline data types
    "DocumentJob",
    "CalculationRequest",
    "DocumentFailure",
    "BorrowerRunResult",
    "ReprocessResult",
]
