import asyncio

import pytest

from conftest import make_record
from shortlister.helpers import similarity
from shortlister.models.models import ResumeStatus, UNKNOWN_EMAIL, UNKNOWN_PHONE
from shortlister.services.duplicates import DuplicateDetector, FuzzyMatchCache, normalize_phone_number


def run(coro):
    return asyncio.run(coro)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestPhoneNormalization:
    @pytest.mark.parametrize("raw,expected", [
        ("+1-555-234-7890", "5552347890"),
        ("15552347890", "5552347890"),
        ("555.234.7890", "5552347890"),
        ("+94 77 1234567", "771234567"),
        ("94112345678", "112345678"),
        ("+94 94 771 234 567", "771234567"),
        ("", ""),
        (None, ""),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_phone_number(raw) == expected

    @pytest.mark.parametrize("raw", [
        "+1-555-234-7890", "+94 77 1234567", "555-234-7890", "0771234567", "+94 94 771 234 567",
    ])
    def test_normalization_is_idempotent(self, raw):
        once = normalize_phone_number(raw)
        assert normalize_phone_number(once) == once


class TestExactMatches:
    def test_email_match_returns_earlier_record(self, repository, detector):
        original = run(repository.save(make_record("Alice Brown", "shared@x.com", file_name="a.txt")))
        candidate = make_record("Bob Green", "SHARED@x.com", file_name="b.txt")

        match = run(detector.find_duplicate(candidate))
        assert match is not None
        assert match.id == original.id

    def test_placeholder_email_never_matches(self, repository, detector):
        run(repository.save(make_record("Alice Brown", UNKNOWN_EMAIL, UNKNOWN_PHONE, file_name="a.txt")))
        candidate = make_record("Zed Quill", UNKNOWN_EMAIL, UNKNOWN_PHONE, file_name="b.txt")
        assert run(detector.find_duplicate(candidate)) is None

    def test_phone_match_across_formats(self, repository, detector):
        original = run(repository.save(make_record("Alice Brown", phone="+1-555-234-7890", file_name="a.txt")))
        candidate = make_record("Carol White", phone="555.234.7890", file_name="b.txt")

        match = run(detector.find_duplicate(candidate))
        assert match.id == original.id

    def test_identical_phone_with_repeated_country_code(self, repository, detector):
        original = run(repository.save(make_record("Alice Brown", phone="+94 94 771 234 567", file_name="a.txt")))
        candidate = make_record("Carol White", phone="+94 94 771 234 567", file_name="b.txt")

        match = run(detector.find_duplicate(candidate))
        assert match is not None
        assert match.id == original.id


class TestFuzzyNameMatches:
    def test_similar_names_with_similar_email_local_parts(self, repository, detector):
        original = run(repository.save(make_record("John Smith", "john.smith@a.com", file_name="a.txt")))
        candidate = make_record("Jon Smith", "johnsmith@b.com", file_name="b.txt")

        match = run(detector.find_duplicate(candidate))
        assert match.id == original.id

    def test_similar_names_with_matching_phone_suffix(self, repository, detector):
        original = run(repository.save(make_record("John Smith", phone="+1-555-234-7890", file_name="a.txt")))
        candidate = make_record("Jon Smith", phone="444-234-7890", file_name="b.txt")

        match = run(detector.find_duplicate(candidate))
        assert match.id == original.id

    def test_similar_names_with_conflicting_contacts(self, repository, detector):
        run(repository.save(make_record("John Smith", "alice@x.com", file_name="a.txt")))
        candidate = make_record("Jon Smith", "bob@y.com", file_name="b.txt")
        assert run(detector.find_duplicate(candidate)) is None

    def test_name_alone_when_nobody_has_contacts(self, repository, detector):
        original = run(repository.save(make_record("John Smith", UNKNOWN_EMAIL, UNKNOWN_PHONE, file_name="a.txt")))
        candidate = make_record("Jon Smith", UNKNOWN_EMAIL, UNKNOWN_PHONE, file_name="b.txt")

        match = run(detector.find_duplicate(candidate))
        assert match.id == original.id

    def test_name_alone_is_not_enough_if_one_side_has_contacts(self, repository, detector):
        run(repository.save(make_record("John Smith", "john@x.com", file_name="a.txt")))
        candidate = make_record("Jon Smith", UNKNOWN_EMAIL, UNKNOWN_PHONE, file_name="b.txt")
        assert run(detector.find_duplicate(candidate)) is None

    def test_duplicates_are_not_match_targets(self, repository, detector):
        run(repository.save(make_record("John Smith", status=ResumeStatus.DUPLICATE, file_name="a.txt")))
        candidate = make_record("Jon Smith", file_name="b.txt")
        assert run(detector.find_duplicate(candidate)) is None

    def test_name_thresholds(self, detector):
        assert detector.is_name_match("john smith", "jon smith")
        assert detector.is_name_match("John Smith", "john smith")
        assert not detector.is_name_match("john smith", "maria garcia")
        # length gap over 10 characters is skipped outright
        assert not detector.is_name_match("jo li", "jonathan alexander li")
        assert not detector.is_name_match(None, "john smith")


class TestSimilarityScore:
    def test_shared_email_with_different_names(self, detector):
        a = make_record("Alice Brown", "a@x.com", UNKNOWN_PHONE)
        b = make_record("Bob Green", "a@x.com", UNKNOWN_PHONE)
        expected = (similarity.token_set_ratio("alice brown", "bob green") * 0.4 + 100 * 0.35) / 2
        assert detector.calculate_similarity_score(a, b) == pytest.approx(expected)

    def test_all_components(self, detector):
        a = make_record("John Smith", "john@x.com", "555-234-7890")
        b = make_record("John Smith", "john@x.com", "+1-555-234-7890")
        assert detector.calculate_similarity_score(a, b) == pytest.approx((40 + 35 + 25) / 3)

    def test_no_components(self, detector):
        a = make_record(None, UNKNOWN_EMAIL, UNKNOWN_PHONE)
        b = make_record(None, UNKNOWN_EMAIL, UNKNOWN_PHONE)
        assert detector.calculate_similarity_score(a, b) == 0.0
        assert detector.calculate_similarity_score(a, None) == 0.0


class TestFuzzyMatchCache:
    def test_entries_expire(self):
        clock = FakeClock()
        cache = FuzzyMatchCache(ttl_seconds=3, clock=clock)
        cache.put("john smith", [])
        clock.now = 2.9
        assert cache.get("john smith") == []
        clock.now = 3.0
        assert cache.get("john smith") is None

    def test_oldest_entry_evicted_when_full(self):
        clock = FakeClock()
        cache = FuzzyMatchCache(ttl_seconds=3, max_size=2, clock=clock)
        cache.put("a", [])
        clock.now = 1
        cache.put("b", [])
        cache.put("c", [])
        assert len(cache) == 2
        assert cache.get("a") is None
        assert cache.get("c") == []

    def test_detector_reuses_cached_name_candidates(self, repository):
        clock = FakeClock()
        detector = DuplicateDetector(repository, cache=FuzzyMatchCache(ttl_seconds=3, clock=clock))
        candidate = make_record("John Smith", UNKNOWN_EMAIL, UNKNOWN_PHONE, file_name="b.txt")

        assert run(detector.find_duplicate(candidate)) is None
        original = run(repository.save(make_record("John Smith", UNKNOWN_EMAIL, UNKNOWN_PHONE, file_name="a.txt")))

        # still served from the cached (empty) candidate list
        assert run(detector.find_duplicate(candidate)) is None
        clock.now = 5
        assert run(detector.find_duplicate(candidate)).id == original.id


class TestStatsAndReprocessing:
    def test_duplicate_stats(self, repository, detector):
        for i, status in enumerate([ResumeStatus.SHORTLISTED, ResumeStatus.DUPLICATE, ResumeStatus.REJECTED, ResumeStatus.DUPLICATE]):
            run(repository.save(make_record(f"Person {i}", status=status, file_name=f"{i}.txt")))

        stats = run(detector.get_duplicate_stats())
        assert stats.total_cvs == 4
        assert stats.duplicate_cvs == 2
        assert stats.unique_cvs == 2
        assert stats.duplicate_percentage == pytest.approx(50.0)

    def test_duplicate_stats_on_empty_corpus(self, detector):
        stats = run(detector.get_duplicate_stats())
        assert stats.total_cvs == 0
        assert stats.duplicate_percentage == 0.0

    def test_reprocess_marks_later_record_and_restores_others(self, repository, detector):
        first = run(repository.save(make_record("Alice Brown", "shared@x.com", skills={"java"}, file_name="a.txt")))
        second = run(repository.save(make_record("Bob Green", "shared@x.com", skills={"java"}, file_name="b.txt")))
        third = run(repository.save(make_record(
            "Carol White", "carol@x.com", status=ResumeStatus.SHORTLISTED, file_name="c.txt"
        )))
        run(repository.save(make_record(
            "Dan Black", "shared@x.com", status=ResumeStatus.DUPLICATE, duplicate_of_id=first.id, file_name="d.txt"
        )))

        result = run(detector.reprocess_duplicates())

        assert result.processed == 3
        assert result.duplicates_found == 1

        first_after = run(repository.find_by_id(first.id))
        second_after = run(repository.find_by_id(second.id))
        third_after = run(repository.find_by_id(third.id))
        assert first_after.status == ResumeStatus.SHORTLISTED
        assert second_after.status == ResumeStatus.DUPLICATE
        assert second_after.duplicate_of_id == first.id
        assert second_after.similarity_score is not None
        # no skills -> rejected, whatever the status was before
        assert third_after.status == ResumeStatus.REJECTED
