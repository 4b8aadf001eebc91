"""Tests for the configuration system."""

import pytest
import structlog

from qualify_core.models import Agency

from qualify_pipeline.config import (
    OCRConfig,
    PipelineConfig,
    QualifyConfig,
    configure_logging,
)


class TestOCRConfig:
    """Test suite for OCRConfig."""

    def test_default_values(self):
        """OCRConfig should have sensible defaults."""
        config = OCRConfig()

        assert config.enabled is True
        assert config.tesseract_cmd is None
        assert config.dpi == 200
        assert config.language == "eng"
        assert config.min_text_chars_per_page == 50
        assert config.penalty == 0.15

    def test_dpi_validation(self):
        """DPI must stay within the rasterisation range."""
        OCRConfig(dpi=72)
        OCRConfig(dpi=600)

        with pytest.raises(ValueError):
            OCRConfig(dpi=50)

        with pytest.raises(ValueError):
            OCRConfig(dpi=1200)

    def test_language_validation(self):
        """Language code cannot be empty."""
        assert OCRConfig(language=" deu ").language == "deu"

        with pytest.raises(ValueError):
            OCRConfig(language="   ")

    def test_penalty_validation(self):
        """The OCR penalty is a fraction below one."""
        with pytest.raises(ValueError):
            OCRConfig(penalty=1.0)

    def test_env_override(self, monkeypatch):
        """OCR settings are read from QUALIFY_OCR_ variables."""
        monkeypatch.setenv("QUALIFY_OCR_DPI", "300")
        monkeypatch.setenv("QUALIFY_OCR_ENABLED", "false")

        config = OCRConfig()

        assert config.dpi == 300
        assert config.enabled is False


class TestPipelineConfig:
    """Test suite for PipelineConfig."""

    def test_default_values(self):
        """PipelineConfig should have sensible defaults."""
        config = PipelineConfig()

        assert config.default_agency == Agency.FANNIE_MAE
        assert config.max_concurrent_documents == 4
        assert config.max_concurrent_borrowers == 8
        assert config.confidence_floor == 0.6
        assert config.update_crm is True
        assert config.debug_mode is False

    def test_concurrency_validation(self):
        """Concurrency limits must be positive."""
        with pytest.raises(ValueError):
            PipelineConfig(max_concurrent_documents=0)

        with pytest.raises(ValueError):
            PipelineConfig(max_concurrent_borrowers=0)

    def test_unknown_agency_rejected(self):
        """Only known agencies can be the default."""
        with pytest.raises(ValueError):
            PipelineConfig(default_agency="hud")

    def test_env_override(self, monkeypatch):
        """Pipeline settings are read from QUALIFY_PIPELINE_ variables."""
        monkeypatch.setenv("QUALIFY_PIPELINE_DEFAULT_AGENCY", "fha")
        monkeypatch.setenv("QUALIFY_PIPELINE_CONFIDENCE_FLOOR", "0.75")

        config = PipelineConfig()

        assert config.default_agency == Agency.FHA
        assert config.confidence_floor == 0.75


class TestQualifyConfig:
    """Test suite for the root configuration."""

    def test_default_values(self):
        """Root config nests OCR and pipeline settings."""
        config = QualifyConfig()

        assert config.env == "development"
        assert config.log_level == "INFO"
        assert config.log_format == "console"
        assert isinstance(config.ocr, OCRConfig)
        assert isinstance(config.pipeline, PipelineConfig)

    def test_env_validation(self):
        """Environment names are normalized and checked."""
        assert QualifyConfig(env=" Production ").env == "production"

        with pytest.raises(ValueError):
            QualifyConfig(env="qa")

    def test_log_level_validation(self):
        """Log levels are normalized and checked."""
        assert QualifyConfig(log_level="debug").log_level == "DEBUG"

        with pytest.raises(ValueError):
            QualifyConfig(log_level="verbose")

    def test_log_format_validation(self):
        """Only console and json renderers are supported."""
        with pytest.raises(ValueError):
            QualifyConfig(log_format="xml")

    def test_is_production(self):
        """is_production reflects the environment."""
        assert QualifyConfig(env="production").is_production is True
        assert QualifyConfig(env="staging").is_production is False

    def test_is_debug(self):
        """Debug comes from the pipeline flag or the log level."""
        assert QualifyConfig().is_debug is False
        assert QualifyConfig(log_level="DEBUG").is_debug is True
        assert QualifyConfig(pipeline=PipelineConfig(debug_mode=True)).is_debug is True

    def test_env_override(self, monkeypatch):
        """Root settings are read from QUALIFY_ variables."""
        monkeypatch.setenv("QUALIFY_ENV", "test")
        monkeypatch.setenv("QUALIFY_LOG_LEVEL", "warning")

        config = QualifyConfig()

        assert config.env == "test"
        assert config.log_level == "WARNING"


class TestConfigureLogging:
    """Logging setup from configuration."""

    @pytest.fixture(autouse=True)
    def reset_structlog(self):
        yield
        structlog.reset_defaults()

    def test_console_logging(self):
        """Console logging can be configured and used."""
        configure_logging(QualifyConfig(log_level="DEBUG"))

        structlog.get_logger().info("config_test_event", value=1)

        assert structlog.is_configured()

    def test_production_uses_json(self):
        """Production always renders JSON."""
        configure_logging(QualifyConfig(env="production"))

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
