"""Declarative configuration schema for the item bank deduplication engine."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveInt,
    PrivateAttr,
    field_validator,
    model_validator,
)

DIGIT_STYLES = ("arabic-indic", "western", "none")


class StrictModel(BaseModel):
    """Base model enforcing strict validation rules."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
    )


class AppSettings(StrictModel):
    """Top-level runtime metadata."""

    environment: str = Field(
        default="development",
        description="Normalized deployment environment name.",
        examples=["production"],
    )
    debug: bool = Field(
        default=False,
        description="When true, enables verbose logging with diagnostics.",
    )

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"development", "production", "staging", "test"}:
            raise ValueError(
                "environment must be one of: development, staging, production, test"
            )
        return normalized


class PathsConfig(StrictModel):
    """Filesystem layout settings."""

    data_dir: Path = Field(
        default=Path("data"),
        description="Root directory for persistent runtime artefacts.",
        examples=["/var/lib/itembank"],
    )
    logs_dir: Path = Field(
        default=Path("logs"),
        description="Directory where operational logs are written.",
    )

    @model_validator(mode="after")
    def _ensure_child_paths(self) -> "PathsConfig":
        base = self.data_dir if self.data_dir.is_absolute() else self.data_dir.resolve()
        object.__setattr__(self, "data_dir", base)
        if not self.logs_dir.is_absolute():
            object.__setattr__(self, "logs_dir", (base / self.logs_dir).resolve())
        return self


class DatabaseConfig(StrictModel):
    """Fingerprint store connectivity parameters."""

    driver: str = Field(
        default="sqlite",
        description="Database backend driver to use.",
        examples=["postgresql"],
    )
    path: Optional[Path] = Field(
        default=Path("data/fingerprints.db"),
        description="Filesystem path for SQLite database files (or ':memory:').",
    )
    host: Optional[str] = Field(
        default=None,
        description="Hostname for the SQL server when using a network backend.",
        examples=["db.internal"],
    )
    port: Optional[int] = Field(
        default=None,
        description="TCP port for the SQL server backend.",
        examples=[5432],
    )
    name: str = Field(default="itembank", description="Database name or schema.")
    user: Optional[str] = Field(
        default=None,
        description="Database username for authenticated connections.",
    )
    password: Optional[str] = Field(
        default=None,
        description="Database password for authenticated connections.",
    )
    echo: bool = Field(
        default=False,
        description="Emit every SQL statement through the SQLAlchemy logger.",
    )

    @field_validator("driver")
    @classmethod
    def _validate_driver(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"sqlite", "postgresql"}:
            raise ValueError("driver must be 'sqlite' or 'postgresql'")
        return normalized

    @field_validator("port", "host", "user", "password", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class DedupConfig(StrictModel):
    """Fingerprinting and similarity search behaviour."""

    similarity_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Default Jaccard threshold for near-duplicate reports.",
    )
    min_content_length: PositiveInt = Field(
        default=10,
        description="Normalized texts shorter than this get no similarity tokens.",
    )
    ngram_size: PositiveInt = Field(
        default=3, description="Character n-gram size used for similarity tokens."
    )
    max_tokens: PositiveInt = Field(
        default=1000, description="Maximum number of similarity tokens per item."
    )
    min_word_length: PositiveInt = Field(
        default=2, description="Shortest word kept as a whole-word token."
    )
    default_limit: PositiveInt = Field(
        default=20, description="Default cap on reported duplicates per list."
    )
    max_limit: int = Field(
        default=50, ge=1, le=50, description="Largest cap a caller may request."
    )
    digit_style: str = Field(
        default="arabic-indic",
        description="Digit folding applied during normalization.",
        examples=["western"],
    )
    candidate_batch_size: PositiveInt = Field(
        default=500,
        description="Rows fetched per round trip while scanning candidates.",
    )

    @field_validator("digit_style")
    @classmethod
    def _validate_digit_style(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in DIGIT_STYLES:
            raise ValueError(f"digit_style must be one of {', '.join(DIGIT_STYLES)}")
        return normalized

    @model_validator(mode="after")
    def _check_limits(self) -> "DedupConfig":
        if self.default_limit > self.max_limit:
            raise ValueError("default_limit cannot exceed max_limit")
        return self


class LoggingConfig(StrictModel):
    """Logging subsystem configuration."""

    level: str = Field(
        default="INFO",
        description="Minimum log level captured by the engine logger.",
        examples=["DEBUG"],
    )
    file_path: Path = Field(
        default=Path("data/logs/itembank.log"),
        description="Path of the rotating log file.",
    )
    max_file_size_mb: PositiveInt = Field(
        default=10,
        description="Maximum size per log file before rotation (MiB).",
    )
    retention_days: PositiveInt = Field(
        default=30,
        description="Number of days to keep rotated log files.",
    )
    format: str = Field(
        default="{time:YYYY-MM-DD HH:mm:ss} | {level:<8} | {name}:{line} | {message}",
        description="loguru formatting template for the file sink.",
    )

    @field_validator("level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.strip().upper()

    @model_validator(mode="after")
    def _resolve_path(self) -> "LoggingConfig":
        if not self.file_path.is_absolute():
            object.__setattr__(self, "file_path", self.file_path.resolve())
        return self


class Config(StrictModel):
    """Complete engine configuration model."""

    app: AppSettings = Field(default_factory=AppSettings)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    _metadata: object = PrivateAttr(default=None)


DEFAULT_CONFIG = Config()


def iter_field_docs(
    model: BaseModel | type[BaseModel],
    prefix: str = "",
) -> Iterable[dict[str, object]]:
    """Yield one flattened documentation entry per schema field."""

    instance = DEFAULT_CONFIG if isinstance(model, type) else model
    for name, field in type(instance).model_fields.items():
        value = getattr(instance, name, field.default)
        key = f"{prefix}.{name}" if prefix else name
        is_nested = isinstance(value, BaseModel)
        yield {
            "name": key,
            "type": getattr(field.annotation, "__name__", str(field.annotation)),
            "description": field.description or "",
            "default": None if is_nested else value,
            "is_nested": is_nested,
        }
        if is_nested:
            yield from iter_field_docs(value, key)


__all__ = [
    "Config",
    "DEFAULT_CONFIG",
    "DIGIT_STYLES",
    "iter_field_docs",
]
