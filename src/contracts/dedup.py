"""Contracts for duplicate detection requests and reports."""

from __future__ import annotations

import math
from typing import Any, List, Mapping, Sequence, TypedDict, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from config.settings import DEDUP_CONFIG
from src.dedup.errors import InvalidOptions

ABSOLUTE_MAX_LIMIT = 50


class DetectionOptionsPayload(TypedDict, total=False):
    """Raw options accepted by ``DuplicateDetectionService.analyze``."""

    threshold: float
    include_exact: bool
    include_similar: bool
    limit: int


class DuplicateMatchPayload(TypedDict):
    item_id: str
    similarity_score: float


class DuplicateReportPayload(TypedDict):
    """JSON form of a duplicate report."""

    item_id: str
    content_hash: str
    uniqueness_score: float
    token_count: int
    content_length: int
    exact_duplicates: List[DuplicateMatchPayload]
    similar_items: List[DuplicateMatchPayload]
    degraded: bool


class DetectionOptions(BaseModel):
    """Validated knobs for one duplicate analysis."""

    threshold: float = Field(
        default_factory=lambda: DEDUP_CONFIG.get("similarity_threshold", 0.8),
        ge=0.0,
        le=1.0,
    )
    include_exact: bool = Field(default=True, strict=True)
    include_similar: bool = Field(default=True, strict=True)
    limit: int = Field(
        default_factory=lambda: DEDUP_CONFIG.get("default_limit", 20),
        ge=1,
        le=ABSOLUTE_MAX_LIMIT,
        strict=True,
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("threshold", mode="before")
    @classmethod
    def _threshold_is_number(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("threshold must be a number")
        if math.isnan(value):
            raise ValueError("threshold must not be NaN")
        return value

    @model_validator(mode="after")
    def _limit_within_configured_cap(self) -> "DetectionOptions":
        max_limit = DEDUP_CONFIG.get("max_limit", ABSOLUTE_MAX_LIMIT)
        if self.limit > max_limit:
            raise ValueError(f"limit must not exceed {max_limit}")
        return self

    @classmethod
    def parse(
        cls, options: Union["DetectionOptions", Mapping[str, Any], None] = None
    ) -> "DetectionOptions":
        """Validate caller options, raising ``InvalidOptions`` on bad input."""

        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        if not isinstance(options, Mapping):
            raise InvalidOptions(
                f"options must be a mapping, got {type(options).__name__}"
            )
        try:
            return cls.model_validate(dict(options))
        except ValidationError as exc:
            errors = exc.errors(include_url=False, include_context=False)
            summary = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'options'}: {error['msg']}"
                for error in errors
            )
            raise InvalidOptions(f"Invalid detection options: {summary}", errors) from exc


class DuplicateMatchModel(BaseModel):
    item_id: str
    similarity_score: float = Field(ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True)


class DuplicateReport(BaseModel):
    """
    Advisory outcome of analysing one item.

    Besides the match lists and scores, the payload carries ``degraded``:
    true when the store failed during the search, in which case the lists are
    empty and ``uniqueness_score`` is 100 because nothing could be compared.
    """

    item_id: str
    content_hash: str
    uniqueness_score: float = Field(ge=0.0, le=100.0)
    token_count: int = Field(ge=0)
    content_length: int = Field(ge=0)
    exact_duplicates: List[DuplicateMatchModel] = Field(default_factory=list)
    similar_items: List[DuplicateMatchModel] = Field(default_factory=list)
    degraded: bool = False

    @property
    def has_duplicates(self) -> bool:
        return bool(self.exact_duplicates or self.similar_items)

    def to_payload(self) -> DuplicateReportPayload:
        return self.model_dump(mode="json")  # type: ignore[return-value]


class ItemContent(BaseModel):
    """An exam item as the authoring system hands it over."""

    item_id: str = Field(min_length=1)
    stem: str = ""
    options: List[str] = Field(default_factory=list)

    model_config = ConfigDict(str_strip_whitespace=False)

    @field_validator("item_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        # UUIDs arrive as objects from the ORM side
        if value is not None and not isinstance(value, str):
            return str(value)
        return value

    @field_validator("options", mode="before")
    @classmethod
    def _drop_missing_options(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, Sequence) and not isinstance(value, str):
            return [option for option in value if option is not None]
        return value

    def combined_text(self) -> str:
        """Stem followed by every option, one per line."""
        parts = [self.stem] + [option for option in self.options if option]
        return "\n".join(part for part in parts if part)


__all__ = [
    "ABSOLUTE_MAX_LIMIT",
    "DetectionOptions",
    "DetectionOptionsPayload",
    "DuplicateMatchModel",
    "DuplicateMatchPayload",
    "DuplicateReport",
    "DuplicateReportPayload",
    "ItemContent",
]
