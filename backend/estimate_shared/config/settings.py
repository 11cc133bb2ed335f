"""
Centralized Configuration System for the estimate funnel

Type-safe configuration using Pydantic Settings. Every tuned constant of the
column-role detector lives here as a named field so deployments can override it
through the environment (ESTIMATE_*) and requests can override it per call.
"""

import json
import os
from enum import Enum
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment types"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class ServiceSettings(BaseSettings):
    """Service configuration settings"""

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("DOCKER_CONTAINER") else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    funnel_host: str = Field(
        default="localhost",
        description="Estimate funnel service host"
    )
    funnel_port: int = Field(
        default=8003,
        description="Estimate funnel service port"
    )

    # CORS Configuration
    cors_enabled: bool = Field(
        default=True,
        description="Enable CORS"
    )
    cors_origins: str = Field(
        default='["http://localhost:3000", "http://localhost:3001", "http://localhost:8080"]',
        description="CORS allowed origins (JSON array string)"
    )

    # Upload guard
    max_upload_bytes: int = Field(
        default=20 * 1024 * 1024,
        description="Maximum accepted workbook size in bytes"
    )
    max_grid_rows: int = Field(
        default=20000,
        description="Rows kept from a JSON grid"
    )
    max_grid_cols: int = Field(
        default=256,
        description="Columns kept from a JSON grid"
    )

    @property
    def funnel_base_url(self) -> str:
        """Construct funnel base URL"""
        return f"http://{self.funnel_host}:{self.funnel_port}"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from JSON string"""
        try:
            return json.loads(self.cors_origins)
        except (json.JSONDecodeError, TypeError):
            return ["*"]


class LLMSettings(BaseSettings):
    """External inference service (LLM) settings"""

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env" if not os.getenv("DOCKER_CONTAINER") else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    provider: str = Field(
        default="disabled",
        description="disabled | openai_compat | mock"
    )
    base_url: str = Field(default="", description="OpenAI-compatible base URL")
    api_key: str = Field(default="", description="Bearer token for the provider")
    model: str = Field(default="", description="Model name")
    timeout_seconds: float = Field(
        default=20.0,
        description="Bounded timeout for a single batch call"
    )
    temperature: float = Field(default=0.0)
    max_tokens: int = Field(default=1500)
    enable_json_mode: bool = Field(default=True)
    max_prompt_chars: int = Field(
        default=20000,
        description="Hard cap on prompt size before provider caps kick in"
    )
    mock_json: str = Field(default="", description="Canned JSON returned by the mock provider")
    max_batch_rows: int = Field(
        default=200,
        description="Cap on rows sent in one batch request"
    )


class ColumnDetectionSettings(BaseSettings):
    """
    Empirically tuned constants of the column-role detector.

    Values are current-behaviour pins, not derived optima.
    """

    model_config = SettingsConfigDict(
        env_prefix="ESTIMATE_",
        env_file=".env" if not os.getenv("DOCKER_CONTAINER") else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Header discovery
    header_scan_rows: int = Field(default=40, description="Rows scanned for a header")
    header_min_cells: int = Field(default=3, description="Minimum non-empty cells in a header row")
    header_min_score: int = Field(default=2, description="Minimum header score")
    header_digit_threshold: int = Field(default=6, description="Digit count triggering the penalty")
    header_digit_penalty: int = Field(default=2, description="Penalty for digit-dense rows")

    # Statistics / role scoring
    sample_row_limit: int = Field(default=300, description="Rows sampled for column statistics")
    min_non_empty: int = Field(default=10, description="Eligibility floor for every role")
    numeric_ratio_floor: float = Field(default=0.6)
    text_ratio_floor: float = Field(default=0.5)
    unit_short_text_len: float = Field(default=6.0)
    item_max_avg_len: float = Field(default=18.0)
    item_min_unique: int = Field(default=10)
    desc_min_avg_len: float = Field(default=18.0)

    # Amount resolution
    amount_right_percentile: float = Field(default=0.6)

    # Size source column
    size_column_min_score: float = Field(default=5.0)

    # Dimension extraction
    dimension_upper_bound_mm: int = Field(default=20000)
    meters_decimal_ceiling: float = Field(default=20.0)

    # AI column sampling
    ai_sample_rows: int = Field(default=60)


class ApplicationSettings(BaseSettings):
    """Main application settings - aggregates all other settings"""

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("DOCKER_CONTAINER") else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment"
    )
    log_level: str = Field(default="INFO")

    # Nested settings
    services: ServiceSettings = ServiceSettings()
    llm: LLMSettings = LLMSettings()
    detection: ColumnDetectionSettings = ColumnDetectionSettings()

    @property
    def is_development(self) -> bool:
        """Check if running in development mode"""
        return self.environment == Environment.DEVELOPMENT


settings = ApplicationSettings()


def get_settings() -> ApplicationSettings:
    """
    Get the global settings instance

    Usable with FastAPI's Depends() for dependency injection.
    """
    return settings


def reload_settings(llm: Optional[LLMSettings] = None) -> ApplicationSettings:
    """
    Reload settings from environment (useful for testing)

    Nested groups are instantiated at class definition time, so they are
    rebuilt explicitly here to pick up environment changes.
    """
    global settings
    settings = ApplicationSettings(
        services=ServiceSettings(),
        llm=llm or LLMSettings(),
        detection=ColumnDetectionSettings(),
    )
    return settings
