"""
Configuration models for matching, duplicate detection and batch processing
"""
import os
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shortlister.utils.exceptions import ConfigurationError
from shortlister.utils.logging_config import get_logger

logger = get_logger(__name__)

MIN_WORKERS = 2
MAX_WORKERS = 20
MAX_CHUNK_SIZE = 100


def _keyword_set(values: Iterable[str]) -> FrozenSet[str]:
    if isinstance(values, str):
        values = values.split(",")
    return frozenset(v.strip().lower() for v in values if v and v.strip())


class MatchingMode(str, Enum):
    """How required keywords decide a shortlist"""
    AND = "AND"
    OR = "OR"
    WEIGHTED = "WEIGHTED"

    @classmethod
    def parse(cls, value, strict: bool = False) -> "MatchingMode":
        """Resolve a mode name, case-insensitively.

        Lenient parsing (ambient configuration) falls back to AND with a
        warning; strict parsing raises ConfigurationError.
        """
        if isinstance(value, cls):
            return value
        name = (value or "").strip().upper()
        try:
            return cls(name)
        except ValueError:
            if strict:
                raise ConfigurationError(
                    f"Invalid matching mode '{value}'. Expected one of AND, OR, WEIGHTED",
                    config_key="mode",
                    config_value=value
                )
            logger.warning(f"Unknown matching mode '{value}', defaulting to AND")
            return cls.AND


class MatchingConfig(BaseModel):
    """Keyword criteria applied to every resume of a batch"""
    model_config = ConfigDict(frozen=True)

    required: FrozenSet[str] = frozenset({"java", "spring"})
    optional: FrozenSet[str] = frozenset({"aws", "docker", "microservices"})
    excluded: FrozenSet[str] = frozenset({"intern", "internship", "fresher"})
    mode: MatchingMode = MatchingMode.AND
    threshold: int = Field(default=70, ge=0, le=100)

    @field_validator("required", "optional", "excluded", mode="before")
    @classmethod
    def normalize_keywords(cls, v):
        return _keyword_set(v or ())

    @field_validator("mode", mode="before")
    @classmethod
    def parse_mode(cls, v):
        return MatchingMode.parse(v, strict=True)


class SkillTaxonomy(BaseModel):
    """Canonical skill name -> textual variants"""
    model_config = ConfigDict(frozen=True)

    skills: Dict[str, FrozenSet[str]]

    @field_validator("skills", mode="before")
    @classmethod
    def normalize_variants(cls, v):
        normalized = {}
        for canonical, variants in (v or {}).items():
            key = canonical.strip().lower()
            normalized[key] = _keyword_set(variants)
        return normalized

    def with_category(self, name: str, variants: Iterable[str]) -> "SkillTaxonomy":
        """Copy of this taxonomy with one category added or replaced."""
        skills = {k: set(v) for k, v in self.skills.items()}
        skills[name] = set(variants)
        return SkillTaxonomy(skills=skills)


class DuplicateThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    exact: int = Field(default=95, ge=0, le=100)
    fuzzy: int = Field(default=85, ge=0, le=100)
    partial: int = Field(default=75, ge=0, le=100)
    cache_ttl_seconds: float = Field(default=3.0, ge=0)
    cache_max_size: int = Field(default=1000, ge=1)


def default_worker_count() -> int:
    cores = os.cpu_count() or 1
    return max(MIN_WORKERS, min(MAX_WORKERS, cores * 2))


class PipelineSettings(BaseModel):
    """Batch ingestion knobs"""
    model_config = ConfigDict(frozen=True)

    chunk_size: int = Field(default=10, ge=1, le=MAX_CHUNK_SIZE)
    max_workers: int = Field(default_factory=default_worker_count, ge=1, le=50)
    skip_limit: int = Field(default=50, ge=0)
    item_timeout_seconds: float = Field(default=30.0, gt=0)
    content_max_chars: int = Field(default=1_000_000, ge=1)
    report_dir: Optional[str] = None


class OrganizerSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    output_dir: str = "./data/output"
    shortlisted_dir: str = "shortlisted"
    duplicates_dir: str = "duplicates"
    errors_dir: str = "errors"
    others_dir: str = "others"
    create_date_folders: bool = True
