"""Configuration system for the Qualify pipeline.

This module provides Pydantic Settings-based configuration with environment
variable support and sensible defaults for document processing and income
calculation runs.

Usage:
    from qualify_pipeline.config import QualifyConfig

    # Load from environment variables and .env file
    config = QualifyConfig()

    # Access OCR settings
    print(config.ocr.dpi)

    # Access pipeline settings
    if config.pipeline.debug_mode:
        print("Debug mode enabled")
"""

import logging
from typing import Optional

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from qualify_core.models.income import Agency


class OCRConfig(BaseSettings):
    """OCR configuration settings.

    Environment Variables:
        QUALIFY_OCR_ENABLED: Allow OCR fallback for scanned documents
        QUALIFY_OCR_TESSERACT_CMD: Path to the tesseract binary
        QUALIFY_OCR_DPI: Rasterisation resolution for PDF pages
        QUALIFY_OCR_LANGUAGE: Tesseract language code
        QUALIFY_OCR_MIN_TEXT_CHARS_PER_PAGE: Direct-text density below which OCR runs
        QUALIFY_OCR_PENALTY: Confidence penalty for OCR-derived fields
    """

    model_config = SettingsConfigDict(
        env_prefix="QUALIFY_OCR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    enabled: bool = Field(
        default=True,
        description="Allow OCR fallback for scanned documents and images",
    )
    tesseract_cmd: Optional[str] = Field(
        default=None,
        description="Path to the tesseract binary (default: found on PATH)",
    )
    dpi: int = Field(
        default=200,
        ge=72,
        le=600,
        description="Resolution used to rasterise PDF pages",
    )
    language: str = Field(
        default="eng",
        description="Tesseract language code",
    )
    min_text_chars_per_page: int = Field(
        default=50,
        ge=0,
        description="Direct text per page below which OCR is attempted",
    )
    penalty: float = Field(
        default=0.15,
        ge=0.0,
        lt=1.0,
        description="Confidence penalty applied to OCR-derived fields",
    )

    @field_validator("language")
    @classmethod
    def validate_language(cls, v: str) -> str:
        """Ensure language code is not empty."""
        if not v or not v.strip():
            raise ValueError("OCR language cannot be empty")
        return v.strip()


class PipelineConfig(BaseSettings):
    """Pipeline configuration settings.

    Environment Variables:
        QUALIFY_PIPELINE_DEFAULT_AGENCY: Agency used when none is given
        QUALIFY_PIPELINE_MAX_CONCURRENT_DOCUMENTS: Documents processed at once per borrower
        QUALIFY_PIPELINE_MAX_CONCURRENT_BORROWERS: Borrowers processed at once
        QUALIFY_PIPELINE_CONFIDENCE_FLOOR: Document confidence that triggers a warning
        QUALIFY_PIPELINE_UPDATE_CRM: Write the qualifying figure to the CRM record
        QUALIFY_PIPELINE_DEBUG_MODE: Enable verbose debug logging
    """

    model_config = SettingsConfigDict(
        env_prefix="QUALIFY_PIPELINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    default_agency: Agency = Field(
        default=Agency.FANNIE_MAE,
        description="Agency rule set used when none is requested",
    )
    max_concurrent_documents: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Documents extracted concurrently for one borrower",
    )
    max_concurrent_borrowers: int = Field(
        default=8,
        ge=1,
        le=256,
        description="Borrower pipelines run concurrently",
    )
    confidence_floor: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Document confidence below which the aggregator warns",
    )
    update_crm: bool = Field(
        default=True,
        description="Write the qualifying monthly income to the CRM record",
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable verbose debug logging for development",
    )


class QualifyConfig(BaseSettings):
    """Root configuration for the Qualify pipeline.

    Environment Variables:
        QUALIFY_ENV: Environment name (development, staging, production, test)
        QUALIFY_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
        QUALIFY_LOG_FORMAT: Log renderer (console or json)

    Example:
        config = QualifyConfig(
            ocr=OCRConfig(dpi=300),
            pipeline=PipelineConfig(default_agency="fha"),
        )
    """

    model_config = SettingsConfigDict(
        env_prefix="QUALIFY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    env: str = Field(
        default="development",
        description="Environment name (development, staging, production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: str = Field(
        default="console",
        description="Log renderer: console or json",
    )

    ocr: OCRConfig = Field(default_factory=OCRConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    @field_validator("env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment name."""
        valid_envs = {"development", "staging", "production", "test"}
        v_lower = v.lower().strip()
        if v_lower not in valid_envs:
            raise ValueError(f"Invalid environment: {v}. Must be one of: {valid_envs}")
        return v_lower

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper().strip()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of: {valid_levels}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v_lower = v.lower().strip()
        if v_lower not in {"console", "json"}:
            raise ValueError(f"Invalid log format: {v}. Must be console or json")
        return v_lower

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.env == "production"

    @property
    def is_debug(self) -> bool:
        """Check if debug mode is enabled (via pipeline or log level)."""
        return self.pipeline.debug_mode or self.log_level == "DEBUG"


def configure_logging(config: QualifyConfig) -> None:
    """Configure structlog for the pipeline.

    Production always logs JSON; elsewhere the configured format is used.
    """
    level = logging.DEBUG if config.is_debug else getattr(logging, config.log_level)
    renderer = (
        structlog.processors.JSONRenderer()
        if config.is_production or config.log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )
