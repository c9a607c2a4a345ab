import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Pattern, Set

from shortlister.models.settings import MatchingConfig, MatchingMode, SkillTaxonomy
from shortlister.utils.logging_config import get_logger

logger = get_logger(__name__)

REQUIRED_POINTS = 10
OPTIONAL_POINTS = 5


def keyword_pattern(keyword: str) -> Pattern:
    # \b would not anchor keywords that end in symbols, like "c++" or "c#"
    return re.compile(r"(?<!\w)" + re.escape(keyword.lower()) + r"(?!\w)")


class SkillExtractor:
    """Maps resume text onto the canonical skills of a taxonomy."""

    def __init__(self, taxonomy: SkillTaxonomy):
        self.taxonomy = taxonomy
        self._patterns: Dict[str, List[Pattern]] = {
            skill: [keyword_pattern(v) for v in sorted(variants)]
            for skill, variants in taxonomy.skills.items()
        }
        logger.info(f"Loaded {len(self._patterns)} skill categories")

    def extract(self, text: str) -> Set[str]:
        if not text:
            return set()
        lowered = text.lower()
        found = {
            skill for skill, patterns in self._patterns.items()
            if any(p.search(lowered) for p in patterns)
        }
        logger.debug(f"Extracted {len(found)} skills")
        return found


@dataclass(frozen=True)
class Verdict:
    shortlisted: bool
    reason: str
    weighted_percentage: Optional[float] = None


def weighted_percentage(skills: Iterable[str], required: FrozenSet[str], optional: FrozenSet[str]) -> Optional[float]:
    """Share of attainable points earned, or None when nothing can be earned."""
    skills = set(skills)
    max_points = len(required) * REQUIRED_POINTS + len(optional) * OPTIONAL_POINTS
    if max_points == 0:
        return None
    earned = (
        sum(REQUIRED_POINTS for k in required if k in skills)
        + sum(OPTIONAL_POINTS for k in optional if k in skills)
    )
    return earned * 100 / max_points


class CriteriaEvaluator:
    """Shortlist/reject decision for one resume under a fixed MatchingConfig."""

    def __init__(self, config: MatchingConfig):
        self.config = config
        self._excluded = {k: keyword_pattern(k) for k in sorted(config.excluded)}

    def excluded_keywords_in(self, text: str) -> List[str]:
        lowered = (text or "").lower()
        return [k for k, p in self._excluded.items() if p.search(lowered)]

    def evaluate(self, skills: Iterable[str], text: str) -> Verdict:
        skills = set(skills or ())
        config = self.config

        excluded = self.excluded_keywords_in(text)
        if excluded:
            return Verdict(False, f"excluded keywords present: {', '.join(excluded)}")

        if config.mode == MatchingMode.OR:
            hits = skills & config.required
            return Verdict(bool(hits), f"required keywords matched: {sorted(hits)}")

        if config.mode == MatchingMode.WEIGHTED:
            pct = weighted_percentage(skills, config.required, config.optional)
            if pct is None:
                return Verdict(False, "no required or optional keywords configured")
            return Verdict(
                pct >= config.threshold,
                f"weighted score {pct:.1f}% (threshold {config.threshold}%)",
                weighted_percentage=pct
            )

        missing = config.required - skills
        if missing:
            return Verdict(False, f"missing required keywords: {sorted(missing)}")
        return Verdict(True, "all required keywords present")

    def matches(self, skills: Iterable[str], text: str) -> bool:
        verdict = self.evaluate(skills, text)
        logger.debug(f"Criteria verdict: {verdict.shortlisted} ({verdict.reason})")
        return verdict.shortlisted
