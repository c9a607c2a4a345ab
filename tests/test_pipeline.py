import asyncio
import threading
import time

import pytest

from shortlister.helpers import similarity
from shortlister.helpers.parsing import TextExtractor
from shortlister.models.models import ResumeStatus
from shortlister.models.schemas import BatchRunStatus
from shortlister.models.settings import MatchingConfig, OrganizerSettings, PipelineSettings
from shortlister.services.organizer import FileOrganizer
from shortlister.services.pipeline import chunked, generate_batch_id
from shortlister.utils.exceptions import ConfigurationError, RecordNotFoundError

JAVA_RESUME = (
    "John Smith\n"
    "john.smith@example.com\n"
    "+1-555-234-7890\n"
    "Senior Java developer. Spring Boot microservices on AWS with Docker."
)


def run(coro):
    return asyncio.run(coro)


def by_file(records):
    return {r.file_name: r for r in records}


class SlowExtractor(TextExtractor):
    def extract(self, path):
        time.sleep(0.3)
        return super().extract(path)


class CountingExtractor(TextExtractor):
    """Sleeps in every extraction and records the peak number running at once."""

    def __init__(self, delay):
        super().__init__()
        self.delay = delay
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def extract(self, path):
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(self.delay)
            return super().extract(path)
        finally:
            with self._lock:
                self.active -= 1


class TestHelpers:
    def test_chunked(self):
        assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
        assert list(chunked([], 3)) == []

    def test_generated_batch_ids(self):
        batch_id = generate_batch_id()
        assert batch_id.startswith("batch-")
        assert len(batch_id) == len("batch-") + 8
        assert generate_batch_id() != batch_id


class TestBatchRun:
    def test_java_spring_resume_is_shortlisted(self, repository, resume_dir, write_resume, pipeline_factory):
        write_resume("john_smith.txt", JAVA_RESUME)

        stats = run(pipeline_factory().run(resume_dir, batch_id="batch-one"))

        assert stats.status == BatchRunStatus.COMPLETED
        assert stats.total_cvs == 1
        assert stats.shortlisted == 1
        record = run(repository.find_by_batch_id("batch-one"))[0]
        assert record.status == ResumeStatus.SHORTLISTED
        assert record.full_name == "John Smith"
        assert record.email == "john.smith@example.com"
        assert record.phone_number == "+1-555-234-7890"
        assert {"java", "spring", "aws", "docker", "microservices"} <= record.skills
        assert record.file_type == "txt"
        assert record.processing_time_ms is not None
        assert record.id is not None

    def test_later_file_with_same_email_is_duplicate(self, repository, resume_dir, write_resume, pipeline_factory):
        write_resume("a_first.txt", JAVA_RESUME)
        write_resume("b_second.txt", "Johnny Appleseed\njohn.smith@example.com\nPython developer")

        stats = run(pipeline_factory().run(resume_dir, chunk_size=1))

        assert stats.shortlisted == 1
        assert stats.duplicates == 1
        records = by_file(run(repository.find_all_ordered()))
        first, second = records["a_first.txt"], records["b_second.txt"]
        assert second.status == ResumeStatus.DUPLICATE
        assert second.duplicate_of_id == first.id
        expected = (similarity.token_set_ratio("johnny appleseed", "john smith") * 0.4 + 35) / 2
        assert second.similarity_score == pytest.approx(expected)

    def test_duplicate_detection_can_be_skipped(self, repository, resume_dir, write_resume, pipeline_factory):
        write_resume("a_first.txt", JAVA_RESUME)
        write_resume("b_second.txt", JAVA_RESUME)

        stats = run(pipeline_factory().run(resume_dir, chunk_size=1, skip_duplicate_detection=True))

        assert stats.shortlisted == 2
        assert stats.duplicates == 0

    def test_excluded_keyword_rejects(self, repository, resume_dir, write_resume, pipeline_factory):
        write_resume("intern.txt", "Mary Jones\nmary@example.com\nJava and Spring summer intern")

        stats = run(pipeline_factory().run(resume_dir))

        assert stats.rejected == 1
        assert run(repository.find_all_ordered())[0].status == ResumeStatus.REJECTED

    def test_weighted_score_below_threshold_rejects(self, repository, resume_dir, write_resume, pipeline_factory):
        write_resume("java_only.txt", "Mary Jones\nmary@example.com\nJava developer")
        config = MatchingConfig(required={"java"}, optional={"docker"}, excluded=set(), mode="WEIGHTED", threshold=70)

        stats = run(pipeline_factory(matching_config=config).run(resume_dir))

        assert stats.rejected == 1

    def test_request_matching_config_overrides_default(self, resume_dir, write_resume, pipeline_factory):
        write_resume("python.txt", "Mary Jones\nmary@example.com\nPython developer")
        config = MatchingConfig(required={"python", "go"}, mode="OR")

        stats = run(pipeline_factory().run(resume_dir, matching_config=config))

        assert stats.shortlisted == 1

    def test_unreadable_file_becomes_error_record(self, repository, resume_dir, write_resume, pipeline_factory):
        write_resume("Jane_Doe_CV.txt", "")
        write_resume("john_smith.txt", JAVA_RESUME)
        (resume_dir / "notes.xyz").write_text("ignored", encoding="utf-8")

        stats = run(pipeline_factory().run(resume_dir))

        assert stats.total_cvs == 2
        assert stats.errors == 1
        assert stats.skip_count == 1
        error = by_file(run(repository.find_all_ordered()))["Jane_Doe_CV.txt"]
        assert error.status == ResumeStatus.ERROR
        assert "empty" in error.error_message
        assert error.full_name == "Jane Doe"
        assert error.email == "unknown@example.com"
        assert error.phone_number == "N/A"

    def test_item_timeout(self, repository, resume_dir, write_resume, pipeline_factory):
        write_resume("john_smith.txt", JAVA_RESUME)

        pipeline = pipeline_factory(extractor=SlowExtractor())
        stats = run(pipeline.run(resume_dir, item_timeout_seconds=0.05))

        assert stats.errors == 1
        record = run(repository.find_all_ordered())[0]
        assert "timed out" in record.error_message

    def test_bulk_write_failure_falls_back_to_individual_saves(self, repository, resume_dir, write_resume, pipeline_factory):
        write_resume("a.txt", JAVA_RESUME)
        write_resume("b.txt", "Mary Jones\nmary@example.com\nPython developer")
        write_resume("c.txt", "Bob Green\nbob@example.com\nGo developer")
        repository.fail_save_many = True
        repository.fail_save_for = {"c.txt"}

        stats = run(pipeline_factory().run(resume_dir, chunk_size=3))

        assert repository.save_many_calls == 1
        assert stats.total_cvs == 2
        assert stats.errors == 2
        assert stats.skip_count == 1
        for record in run(repository.find_all_ordered()):
            assert record.status == ResumeStatus.ERROR
            assert record.error_message == "Batch write error: bulk write rejected"

    def test_skip_limit_aborts_remaining_chunks(self, repository, resume_dir, write_resume, pipeline_factory):
        write_resume("a_empty.txt", "")
        write_resume("b.txt", JAVA_RESUME)
        write_resume("c.txt", "Mary Jones\nmary@example.com\nPython developer")

        stats = run(pipeline_factory().run(resume_dir, chunk_size=1, skip_limit=0))

        assert stats.status == BatchRunStatus.ABORTED
        assert stats.abort_reason
        assert stats.total_cvs == 1
        assert run(repository.count()) == 1

    def test_summary_is_stored(self, repository, resume_dir, write_resume, pipeline_factory):
        write_resume("john_smith.txt", JAVA_RESUME)

        stats = run(pipeline_factory().run(resume_dir, batch_id="stored-batch"))

        assert repository.batches["stored-batch"] == stats
        assert stats.started_at <= stats.finished_at
        assert 0 < stats.throughput_per_second <= 1.0

    def test_report_written_when_configured(self, resume_dir, write_resume, pipeline_factory, tmp_path):
        write_resume("john_smith.txt", JAVA_RESUME)
        report_dir = tmp_path / "reports"
        settings = PipelineSettings(max_workers=2, report_dir=str(report_dir))

        run(pipeline_factory(settings=settings).run(resume_dir, batch_id="reported"))

        assert (report_dir / "reported_report.csv").exists()
        assert (report_dir / "reported_summary.md").exists()

    def test_files_are_organized_by_status(self, resume_dir, write_resume, pipeline_factory, tmp_path):
        write_resume("john_smith.txt", JAVA_RESUME)
        out = tmp_path / "out"
        organizer = FileOrganizer(OrganizerSettings(output_dir=str(out), create_date_folders=False))

        run(pipeline_factory(organizer=organizer).run(resume_dir))

        assert (out / "shortlisted" / "john_smith.txt").exists()
        assert not (resume_dir / "john_smith.txt").exists()

    def test_organizing_can_be_turned_off_per_run(self, resume_dir, write_resume, pipeline_factory, tmp_path):
        write_resume("john_smith.txt", JAVA_RESUME)
        organizer = FileOrganizer(OrganizerSettings(output_dir=str(tmp_path / "out")))

        run(pipeline_factory(organizer=organizer).run(resume_dir, organize_files=False))

        assert (resume_dir / "john_smith.txt").exists()

    def test_empty_directory(self, resume_dir, pipeline_factory):
        stats = run(pipeline_factory().run(resume_dir))
        assert stats.total_cvs == 0
        assert stats.status == BatchRunStatus.COMPLETED


class TestValidation:
    def test_missing_directory(self, pipeline_factory, tmp_path):
        with pytest.raises(ConfigurationError):
            run(pipeline_factory().run(tmp_path / "nope"))

    @pytest.mark.parametrize("kwargs", [
        {"chunk_size": 0},
        {"chunk_size": 101},
        {"max_workers": 0},
        {"max_workers": 51},
        {"batch_id": "bad id!"},
    ])
    def test_invalid_arguments(self, resume_dir, pipeline_factory, kwargs):
        with pytest.raises(ConfigurationError):
            run(pipeline_factory().run(resume_dir, **kwargs))


class TestSingleFileAndStats:
    def test_process_single(self, repository, write_resume, pipeline_factory):
        path = write_resume("john_smith.txt", JAVA_RESUME)

        record = run(pipeline_factory().process_single(path))

        assert record.status == ResumeStatus.SHORTLISTED
        assert record.batch_id.startswith("single-")
        assert run(repository.find_by_id(record.id)) is not None

    def test_process_single_rejects_bad_paths(self, resume_dir, write_resume, pipeline_factory):
        unsupported = write_resume("notes.xyz", "text")
        pipeline = pipeline_factory()
        with pytest.raises(ConfigurationError):
            run(pipeline.process_single(resume_dir / "missing.txt"))
        with pytest.raises(ConfigurationError):
            run(pipeline.process_single(unsupported))

    def test_batch_statistics_are_recomputed(self, resume_dir, write_resume, pipeline_factory):
        write_resume("a.txt", JAVA_RESUME)
        write_resume("b.txt", "Mary Jones\nmary@example.com\nPython developer")
        pipeline = pipeline_factory()

        run(pipeline.run(resume_dir, batch_id="recount"))
        stats = run(pipeline.get_batch_statistics("recount"))

        assert stats.total_cvs == 2
        assert stats.shortlisted == 1
        assert stats.rejected == 1

    def test_unknown_batch(self, pipeline_factory):
        with pytest.raises(RecordNotFoundError):
            run(pipeline_factory().get_batch_statistics("missing"))

    def test_batch_statistics_keep_run_outcome(self, resume_dir, write_resume, pipeline_factory):
        write_resume("a_empty.txt", "")
        write_resume("b.txt", JAVA_RESUME)
        pipeline = pipeline_factory()

        run(pipeline.run(resume_dir, chunk_size=1, skip_limit=0, batch_id="stopped"))
        stats = run(pipeline.get_batch_statistics("stopped"))

        assert stats.status == BatchRunStatus.ABORTED
        assert stats.skip_count == 1
        assert stats.abort_reason
        assert stats.errors == 1


class TestConcurrency:
    def test_worker_limit_bounds_items_in_flight(self, repository, write_resume, resume_dir, pipeline_factory):
        for i in range(6):
            write_resume(f"resume_{i}.txt", f"Person Number{i}\nperson{i}@example.com\nJava developer")
        extractor = CountingExtractor(delay=0.05)

        stats = run(pipeline_factory(extractor=extractor).run(resume_dir, chunk_size=3, max_workers=2))

        assert stats.total_cvs == 6
        assert 1 <= extractor.peak <= 2

    def test_chunks_are_processed_in_order(self, repository, write_resume, resume_dir, pipeline_factory):
        for i in range(6):
            write_resume(f"resume_{i}.txt", f"Person Number{i}\nperson{i}@example.com\nJava developer")

        run(pipeline_factory(extractor=CountingExtractor(delay=0.01)).run(resume_dir, chunk_size=3, max_workers=2))

        records = by_file(run(repository.find_all_ordered()))
        first = [records[f"resume_{i}.txt"].created_at for i in range(3)]
        second = [records[f"resume_{i}.txt"].created_at for i in range(3, 6)]
        assert max(first) < min(second)

    def test_timed_out_extractions_keep_their_slot(self, repository, write_resume, resume_dir, pipeline_factory):
        for i in range(3):
            write_resume(f"resume_{i}.txt", JAVA_RESUME)
        extractor = CountingExtractor(delay=0.2)

        stats = run(pipeline_factory(extractor=extractor).run(resume_dir, max_workers=1, item_timeout_seconds=0.05))

        assert stats.errors == 3
        assert extractor.peak == 1
