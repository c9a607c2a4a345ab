"""
Duplicate detection across the committed resume corpus.

A candidate is compared against records that were committed before it, in
order of precedence:

1. exact email (case-insensitive)
2. exact normalized phone number
3. fuzzy name similarity, confirmed by an email/phone corroboration check

Placeholder contact values (``unknown@example.com``, ``N/A``) count as
missing so that resumes without contact details never pair up on them.
"""
import re
import time
from typing import Callable, Dict, List, Optional, Tuple

from shortlister.helpers import similarity
from shortlister.models.models import DocumentRecord, ResumeStatus, UNKNOWN_EMAIL, UNKNOWN_PHONE
from shortlister.models.schemas import DuplicateStats, ReprocessResult
from shortlister.models.settings import DuplicateThresholds
from shortlister.utils.logging_config import get_logger

logger = get_logger(__name__)

MAX_NAME_LENGTH_GAP = 10
EMAIL_LOCAL_PART_THRESHOLD = 80
PHONE_SUFFIX_DIGITS = 7

NAME_WEIGHTS = {"ratio": 0.30, "partial": 0.20, "token_sort": 0.25, "token_set": 0.25}


def normalize_phone_number(phone: Optional[str]) -> str:
    """Digits only, with leading 94 or 1 country codes removed.

    The 94 prefix is stripped until the number is shorter than 11 digits so
    that normalizing an already normalized number changes nothing.
    """
    if not phone:
        return ""
    digits = re.sub(r"\D", "", phone)
    while digits.startswith("94") and len(digits) >= 11:
        digits = digits[2:]
    if digits.startswith("1") and len(digits) == 11:
        return digits[1:]
    return digits


def usable_email(record: DocumentRecord) -> Optional[str]:
    email = (record.email or "").strip().lower()
    if not email or email == UNKNOWN_EMAIL:
        return None
    return email


def usable_phone(record: DocumentRecord) -> Optional[str]:
    phone = (record.phone_number or "").strip()
    if not phone or phone == UNKNOWN_PHONE:
        return None
    return normalize_phone_number(phone) or None


def usable_name(record: DocumentRecord) -> Optional[str]:
    name = (record.full_name or "").strip().lower()
    return name or None


class FuzzyMatchCache:
    """Short-lived cache of name-similar records, keyed by lowercased name.

    Entries expire ``ttl_seconds`` after they are written; when full, the
    oldest entry is dropped.
    """

    def __init__(self, ttl_seconds: float = 3.0, max_size: int = 1000, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self.clock = clock
        self._entries: Dict[str, Tuple[float, List[DocumentRecord]]] = {}

    def get(self, key: str) -> Optional[List[DocumentRecord]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self.clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def put(self, key: str, value: List[DocumentRecord]) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            oldest = min(self._entries, key=lambda k: self._entries[k][0])
            del self._entries[oldest]
        self._entries[key] = (self.clock() + self.ttl_seconds, value)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class DuplicateDetector:
    def __init__(self, repository, thresholds: DuplicateThresholds = None, cache: FuzzyMatchCache = None):
        self.repository = repository
        self.thresholds = thresholds or DuplicateThresholds()
        if cache is None:
            cache = FuzzyMatchCache(self.thresholds.cache_ttl_seconds, self.thresholds.cache_max_size)
        self.cache = cache

    async def find_duplicate(
        self,
        candidate: DocumentRecord,
        before: DocumentRecord = None,
        use_cache: bool = True
    ) -> Optional[DocumentRecord]:
        """Earliest committed record the candidate duplicates, if any.

        ``before`` restricts the search to records created ahead of it; the
        reprocessing pass passes the candidate itself.
        """
        if candidate is None:
            return None

        email = usable_email(candidate)
        if email:
            matches = await self.repository.find_by_email(email, before=before)
            match = self._first_other(candidate, matches)
            if match:
                logger.info(f"Exact email match: {candidate.file_name} matches record {match.id}")
                return match

        phone = usable_phone(candidate)
        if phone:
            matches = await self.repository.find_by_normalized_phone(phone, before=before)
            match = self._first_other(candidate, matches)
            if match:
                logger.info(f"Exact phone match: {candidate.file_name} matches record {match.id}")
                return match

        if usable_name(candidate):
            return await self._find_fuzzy_name_match(candidate, before, use_cache)
        return None

    @staticmethod
    def _first_other(candidate: DocumentRecord, matches: List[DocumentRecord]) -> Optional[DocumentRecord]:
        for m in matches:
            if candidate.id is None or m.id != candidate.id:
                return m
        return None

    async def _find_fuzzy_name_match(self, candidate, before, use_cache) -> Optional[DocumentRecord]:
        name = usable_name(candidate)
        similar = self.cache.get(name) if use_cache else None
        if similar is None:
            existing = await self.repository.find_all_non_duplicate_ordered(before=before)
            similar = [r for r in existing if self.is_name_match(name, usable_name(r))]
            if use_cache:
                self.cache.put(name, similar)

        for existing in similar:
            if candidate.id is not None and existing.id == candidate.id:
                continue
            if self._is_corroborated(candidate, existing):
                logger.info(f"Fuzzy name match: '{candidate.full_name}' matches record {existing.id}")
                return existing
        return None

    def name_scores(self, a: str, b: str) -> Dict[str, float]:
        scores = {
            "ratio": similarity.ratio(a, b),
            "partial": similarity.partial_ratio(a, b),
            "token_sort": similarity.token_sort_ratio(a, b),
            "token_set": similarity.token_set_ratio(a, b),
        }
        scores["composite"] = sum(scores[k] * w for k, w in NAME_WEIGHTS.items())
        return scores

    def is_name_match(self, a: Optional[str], b: Optional[str]) -> bool:
        if not a or not b:
            return False
        a, b = a.strip().lower(), b.strip().lower()
        if abs(len(a) - len(b)) > MAX_NAME_LENGTH_GAP:
            return False

        s = self.name_scores(a, b)
        t = self.thresholds
        logger.debug(f"Name similarity '{a}' vs '{b}': {s}")
        return (
            s["composite"] >= t.exact
            or (s["ratio"] >= t.fuzzy and s["token_set"] >= t.fuzzy)
            or (s["partial"] >= t.partial and s["token_sort"] >= t.partial)
        )

    def _is_corroborated(self, candidate: DocumentRecord, existing: DocumentRecord) -> bool:
        c_email, e_email = usable_email(candidate), usable_email(existing)
        if c_email and e_email:
            if similarity.ratio(c_email.split("@")[0], e_email.split("@")[0]) >= EMAIL_LOCAL_PART_THRESHOLD:
                return True

        c_phone, e_phone = usable_phone(candidate), usable_phone(existing)
        if c_phone and e_phone and len(c_phone) >= PHONE_SUFFIX_DIGITS and len(e_phone) >= PHONE_SUFFIX_DIGITS:
            if c_phone[-PHONE_SUFFIX_DIGITS:] == e_phone[-PHONE_SUFFIX_DIGITS:]:
                return True

        # name alone is only trusted when neither side has any contact detail
        return not (c_email or c_phone or e_email or e_phone)

    def calculate_similarity_score(self, a: DocumentRecord, b: DocumentRecord) -> float:
        if a is None or b is None:
            return 0.0

        total, factors = 0.0, 0

        name_a, name_b = usable_name(a), usable_name(b)
        if name_a and name_b:
            total += similarity.token_set_ratio(name_a, name_b) * 0.4
            factors += 1

        email_a, email_b = usable_email(a), usable_email(b)
        if email_a and email_b:
            total += (100 if email_a == email_b else similarity.ratio(email_a, email_b)) * 0.35
            factors += 1

        phone_a, phone_b = usable_phone(a), usable_phone(b)
        if phone_a and phone_b:
            total += (100 if phone_a == phone_b else similarity.ratio(phone_a, phone_b)) * 0.25
            factors += 1

        return total / factors if factors else 0.0

    async def get_duplicate_stats(self) -> DuplicateStats:
        total = await self.repository.count()
        duplicates = await self.repository.count_by_status(ResumeStatus.DUPLICATE)
        return DuplicateStats(
            total_cvs=total,
            unique_cvs=total - duplicates,
            duplicate_cvs=duplicates,
            duplicate_percentage=(duplicates / total * 100) if total else 0.0,
        )

    async def reprocess_duplicates(self) -> ReprocessResult:
        """Replay detection over the whole corpus in creation order.

        Records already marked duplicate are left alone. Everything else is
        compared with the records created before it; a record that is not a
        duplicate goes back to SHORTLISTED if it has any skills, else REJECTED.
        """
        logger.info("Starting duplicate reprocessing")
        records = await self.repository.find_all_ordered()
        processed = duplicates_found = 0

        for record in records:
            if record.status == ResumeStatus.DUPLICATE:
                continue

            record.reset_for_reprocessing()
            match = await self.find_duplicate(record, before=record, use_cache=False)
            if match is not None:
                record.mark_duplicate(match.id, self.calculate_similarity_score(record, match))
                duplicates_found += 1
            else:
                record.transition_to(ResumeStatus.SHORTLISTED if record.skills else ResumeStatus.REJECTED)

            await self.repository.save(record)
            processed += 1

        logger.info(f"Duplicate reprocessing completed. Processed: {processed}, duplicates found: {duplicates_found}")
        return ReprocessResult(processed=processed, duplicates_found=duplicates_found)
