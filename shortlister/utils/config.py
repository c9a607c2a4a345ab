"""
Environment-backed configuration loaders.

Each loader reads the process environment once and returns an immutable
settings object; nothing here is consulted again while a batch runs.
"""
import json
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from shortlister.helpers.skills import DEFAULT_SKILL_CATEGORIES
from shortlister.models.settings import (
    DuplicateThresholds,
    MatchingConfig,
    MatchingMode,
    OrganizerSettings,
    PipelineSettings,
    SkillTaxonomy,
    default_worker_count,
)
from shortlister.utils.exceptions import ConfigurationError
from shortlister.utils.logging_config import get_logger

logger = get_logger(__name__)

load_dotenv()


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer", config_key=key, config_value=raw)


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number", config_key=key, config_value=raw)


def _env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _build(model, section: str, **values):
    try:
        return model(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {section} configuration: {e}", config_key=section, cause=e)


def load_matching_config() -> MatchingConfig:
    mode = MatchingMode.parse(os.getenv("CV_MATCHING_MODE", "AND"))
    config = _build(
        MatchingConfig,
        "matching",
        required=os.getenv("CV_KEYWORDS_REQUIRED", "java,spring"),
        optional=os.getenv("CV_KEYWORDS_OPTIONAL", "aws,docker,microservices"),
        excluded=os.getenv("CV_KEYWORDS_EXCLUDED", "intern,internship,fresher"),
        mode=mode,
        threshold=_env_int("CV_MATCHING_THRESHOLD", 70),
    )
    logger.info(
        f"Matching config - mode: {config.mode.value}, required: {sorted(config.required)}, "
        f"threshold: {config.threshold}"
    )
    return config


def load_duplicate_thresholds() -> DuplicateThresholds:
    return _build(
        DuplicateThresholds,
        "duplicate",
        exact=_env_int("CV_DUPLICATE_THRESHOLD_EXACT", 95),
        fuzzy=_env_int("CV_DUPLICATE_THRESHOLD_FUZZY", 85),
        partial=_env_int("CV_DUPLICATE_THRESHOLD_PARTIAL", 75),
        cache_ttl_seconds=_env_float("CV_FUZZY_CACHE_TTL_SECONDS", 3.0),
        cache_max_size=_env_int("CV_FUZZY_CACHE_MAX_SIZE", 1000),
    )


def load_pipeline_settings() -> PipelineSettings:
    return _build(
        PipelineSettings,
        "pipeline",
        chunk_size=_env_int("CV_CHUNK_SIZE", 10),
        max_workers=_env_int("CV_MAX_WORKERS", default_worker_count()),
        skip_limit=_env_int("CV_SKIP_LIMIT", 50),
        item_timeout_seconds=_env_float("CV_ITEM_TIMEOUT_SECONDS", 30.0),
        content_max_chars=_env_int("CV_CONTENT_MAX_CHARS", 1_000_000),
        report_dir=os.getenv("REPORT_DIR") or None,
    )


def load_organizer_settings() -> OrganizerSettings:
    return _build(
        OrganizerSettings,
        "organizer",
        enabled=_env_bool("CV_ORGANIZE_FILES", True),
        output_dir=os.getenv("CV_OUTPUT_DIR", "./data/output"),
        create_date_folders=_env_bool("CV_CREATE_DATE_FOLDERS", True),
    )


def load_skill_taxonomy() -> SkillTaxonomy:
    """Built-in taxonomy, or the JSON object at SKILL_TAXONOMY_PATH."""
    path = os.getenv("SKILL_TAXONOMY_PATH")
    if not path:
        return SkillTaxonomy(skills=DEFAULT_SKILL_CATEGORIES)

    try:
        with open(Path(path), "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(
            f"Could not load skill taxonomy from {path}: {e}",
            config_key="SKILL_TAXONOMY_PATH",
            config_value=path,
            cause=e
        )
    if not isinstance(data, dict):
        raise ConfigurationError(
            "Skill taxonomy file must hold a JSON object of skill -> variants",
            config_key="SKILL_TAXONOMY_PATH",
            config_value=path
        )
    taxonomy = _build(SkillTaxonomy, "taxonomy", skills=data)
    logger.info(f"Loaded {len(taxonomy.skills)} skills from {path}")
    return taxonomy
