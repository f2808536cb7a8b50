"""Settings for template loading, validation and execution logging.

Read from the environment with the ``DYNAMIC_QUERY_`` prefix; nested values
use ``__`` (e.g. ``DYNAMIC_QUERY_VALIDATION__STRICT_MODE=true``).
"""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingSettings(BaseModel):
    enabled: bool = False
    # Bound values may carry sensitive data.
    log_parameters: bool = False
    log_execution_time: bool = True
    log_generated_sql: bool = False


class ValidationSettings(BaseModel):
    strict_mode: bool = False
    validate_at_startup: bool = True
    validate_required_parameters: bool = True
    validate_sql_syntax: bool = True
    validate_result_descriptors: bool = False


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DYNAMIC_QUERY_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    enabled: bool = True
    preload_enabled: bool = True

    # Scan patterns and the lazy lookup path are resolved against this root.
    resource_root: Path = Path(".")
    base_path: str = "sql"
    scan_patterns: list[str] = Field(
        default_factory=lambda: ["sql/*.yml", "sql/*.yaml"]
    )
    yaml_extension: str = "yml"
    encoding: str = "utf-8"

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)


@lru_cache
def get_settings() -> Settings:
    """Environment-derived default settings (built once)."""
    return Settings()
