"""
Batch ingestion of a directory of resumes.

Files are processed in fixed-size chunks. Items of a chunk run concurrently
(bounded by a semaphore) and the chunk is then committed as one bulk write.
Failed items become ERROR records and count towards the skip limit; once the
skip count passes the limit the batch stops after the current chunk.
"""
import asyncio
import re
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from shortlister.helpers.parsing import TextExtractor, is_supported, list_resume_files
from shortlister.helpers.skills import DEFAULT_SKILL_CATEGORIES
from shortlister.models.models import DocumentRecord, ResumeStatus
from shortlister.models.schemas import BatchRunStatus, BatchStatistics
from shortlister.models.settings import (
    MAX_CHUNK_SIZE,
    MatchingConfig,
    OrganizerSettings,
    PipelineSettings,
    SkillTaxonomy,
)
from shortlister.services.duplicates import DuplicateDetector
from shortlister.services.graph import build_record_graph
from shortlister.services.identity import ensure_required_fields
from shortlister.services.matching import CriteriaEvaluator, SkillExtractor
from shortlister.services.organizer import FileOrganizer
from shortlister.services.reports import write_batch_report
from shortlister.utils import config
from shortlister.utils.exceptions import (
    ConfigurationError,
    OrganizationError,
    PersistenceError,
    RecordNotFoundError,
    SkipLimitExceededError,
)
from shortlister.utils.logging_config import PerformanceMonitor, get_logger

logger = get_logger(__name__)

BATCH_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
MAX_THREADS = 50


def generate_batch_id() -> str:
    return f"batch-{uuid.uuid4().hex[:8]}"


def single_batch_id() -> str:
    return f"single-{int(time.time() * 1000)}"


def chunked(items: List, size: int):
    for i in range(0, len(items), size):
        yield items[i:i + size]


class IngestionPipeline:
    def __init__(
        self,
        repository,
        settings: PipelineSettings = None,
        taxonomy: SkillTaxonomy = None,
        matching_config: MatchingConfig = None,
        extractor: TextExtractor = None,
        organizer: FileOrganizer = None,
        detector: DuplicateDetector = None,
    ):
        self.repository = repository
        self.settings = settings or PipelineSettings()
        self.taxonomy = taxonomy or SkillTaxonomy(skills=DEFAULT_SKILL_CATEGORIES)
        self.matching_config = matching_config or MatchingConfig()
        self.extractor = extractor or TextExtractor()
        self.organizer = organizer or FileOrganizer(OrganizerSettings(enabled=False))
        self.detector = detector or DuplicateDetector(repository)
        self.skill_extractor = SkillExtractor(self.taxonomy)

    # -------- validation --------
    def validate(self, input_dir, chunk_size: int, max_workers: int, batch_id: Optional[str]) -> Path:
        if not input_dir:
            raise ConfigurationError("Input directory is required", config_key="input_directory")
        folder = Path(input_dir)
        if not folder.is_dir():
            raise ConfigurationError(
                f"Input directory does not exist: {folder}",
                config_key="input_directory",
                config_value=input_dir
            )
        if not 1 <= chunk_size <= MAX_CHUNK_SIZE:
            raise ConfigurationError(
                f"Chunk size must be between 1 and {MAX_CHUNK_SIZE}",
                config_key="chunk_size",
                config_value=chunk_size
            )
        if not 1 <= max_workers <= MAX_THREADS:
            raise ConfigurationError(
                f"Worker count must be between 1 and {MAX_THREADS}",
                config_key="max_workers",
                config_value=max_workers
            )
        if batch_id is not None and not BATCH_ID_PATTERN.match(batch_id):
            raise ConfigurationError(
                "Batch ID can only contain letters, numbers, underscores, and hyphens",
                config_key="batch_id",
                config_value=batch_id
            )
        return folder

    # -------- per item --------
    def _error_record(self, path: Path, batch_id: str, message: str, started: float) -> DocumentRecord:
        record = DocumentRecord.from_path(path, batch_id)
        record.transition_to(ResumeStatus.PROCESSING)
        record.mark_error(message)
        record.processing_time_ms = int((time.perf_counter() - started) * 1000)
        record.processed_by = self._worker_name()
        ensure_required_fields(record)
        return record

    @staticmethod
    def _worker_name() -> str:
        task = asyncio.current_task()
        return task.get_name() if task else "main"

    async def _process_item(self, graph, path: Path, batch_id: str, semaphore, timeout: float) -> Tuple[DocumentRecord, bool]:
        """Returns the finished record and whether it counts as a skip."""
        async with semaphore:
            started = time.perf_counter()
            record = DocumentRecord.from_path(path, batch_id)
            record.transition_to(ResumeStatus.PROCESSING)
            record.processed_by = self._worker_name()
            logger.info(f"Starting processing of {path.name}")

            try:
                state = await asyncio.wait_for(graph.ainvoke({"path": str(path), "record": record}), timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Processing of {path.name} timed out after {timeout}s")
                return self._error_record(path, batch_id, f"Processing timed out after {timeout}s", started), True
            except Exception as e:
                logger.warning(f"Failed to process {path.name}: {e}")
                return self._error_record(path, batch_id, str(e), started), True

            record = state["record"]
            record.processing_time_ms = int((time.perf_counter() - started) * 1000)
            logger.info(
                f"Completed {record.file_name} | Status: {record.status.value} | "
                f"Skills: {len(record.skills)} | Time: {record.processing_time_ms}ms"
            )
            return record, False

    # -------- commit --------
    async def _commit_chunk(self, records: List[DocumentRecord]) -> Tuple[List[DocumentRecord], int]:
        """Persist a chunk; returns the records that were saved and the number given up on."""
        try:
            await self.repository.save_many(records)
            return records, 0
        except PersistenceError as e:
            reason = e.message
            logger.error(f"Chunk write failed for {len(records)} records, retrying individually: {reason}")

        saved, skipped = [], 0
        for record in records:
            record.mark_error(f"Batch write error: {reason}")
            try:
                await self.repository.save(record)
                saved.append(record)
            except PersistenceError as inner:
                logger.error(f"Giving up on {record.file_name}: {inner.message}")
                skipped += 1
        return saved, skipped

    async def _organize(self, records: List[DocumentRecord]) -> None:
        for record in records:
            try:
                await asyncio.to_thread(self.organizer.organize, record)
            except OrganizationError as e:
                logger.warning(f"Could not organize {record.file_name}: {e.message}")

    # -------- batch --------
    async def run(
        self,
        input_dir,
        chunk_size: int = None,
        max_workers: int = None,
        batch_id: str = None,
        matching_config: MatchingConfig = None,
        skip_duplicate_detection: bool = False,
        organize_files: bool = True,
        item_timeout_seconds: float = None,
        skip_limit: int = None,
    ) -> BatchStatistics:
        chunk_size = chunk_size if chunk_size is not None else self.settings.chunk_size
        max_workers = max_workers if max_workers is not None else self.settings.max_workers
        folder = self.validate(input_dir, chunk_size, max_workers, batch_id)

        batch_id = batch_id or generate_batch_id()
        timeout = item_timeout_seconds or self.settings.item_timeout_seconds
        skip_limit = skip_limit if skip_limit is not None else self.settings.skip_limit
        evaluator = CriteriaEvaluator(matching_config or self.matching_config)
        # extraction threads keep their slot until they finish, even after an item times out
        executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"{batch_id}-extract")
        graph = build_record_graph(
            self.extractor,
            self.skill_extractor,
            evaluator,
            None if skip_duplicate_detection else self.detector,
            self.settings.content_max_chars,
            executor,
        )

        files = list_resume_files(folder)
        logger.info(
            f"Batch {batch_id} starting: {len(files)} files, chunk size {chunk_size}, "
            f"{max_workers} workers, mode {evaluator.config.mode.value}"
        )

        started_at = datetime.utcnow()
        clock = time.perf_counter()
        semaphore = asyncio.Semaphore(max_workers)
        committed: List[DocumentRecord] = []
        skip_count = 0
        status, abort_reason = BatchRunStatus.COMPLETED, None

        try:
            for index, chunk in enumerate(chunked(files, chunk_size), start=1):
                with PerformanceMonitor(f"batch {batch_id} chunk {index}", logger, threshold_ms=timeout * 1000):
                    results = await asyncio.gather(*[
                        self._process_item(graph, path, batch_id, semaphore, timeout) for path in chunk
                    ])
                    skip_count += sum(1 for _, failed in results if failed)

                    saved, lost = await self._commit_chunk([r for r, _ in results])
                    skip_count += lost
                    committed.extend(saved)
                    self.detector.cache.clear()

                if organize_files:
                    await self._organize(saved)

                if skip_count > skip_limit:
                    raise SkipLimitExceededError(skip_count, skip_limit)
        except SkipLimitExceededError as e:
            logger.error(f"Batch {batch_id} aborted: {e.message}")
            status, abort_reason = BatchRunStatus.ABORTED, e.message
        finally:
            executor.shutdown(wait=False)

        elapsed = time.perf_counter() - clock
        stats = BatchStatistics.from_records(
            batch_id,
            committed,
            elapsed,
            status=status,
            skip_count=skip_count,
            started_at=started_at,
            finished_at=datetime.utcnow(),
            abort_reason=abort_reason,
        )
        await self._finish(stats, committed)
        return stats

    async def _finish(self, stats: BatchStatistics, records: List[DocumentRecord]) -> None:
        logger.info(
            f"Batch {stats.batch_id} {stats.status.value}: {stats.total_cvs} resumes, "
            f"{stats.shortlisted} shortlisted, {stats.duplicates} duplicates, {stats.rejected} rejected, "
            f"{stats.errors} errors, {stats.skip_count} skipped, {stats.throughput_per_second:.2f} files/s"
        )
        try:
            await self.repository.save_batch_summary(stats)
        except PersistenceError as e:
            logger.warning(f"Could not store summary for batch {stats.batch_id}: {e.message}")

        if self.settings.report_dir:
            try:
                await asyncio.to_thread(write_batch_report, stats, records, self.settings.report_dir)
            except OSError as e:
                logger.warning(f"Could not write report for batch {stats.batch_id}: {e}")

    async def process_single(self, file_path, organize_files: bool = True) -> DocumentRecord:
        """Run one file through the batch flow under its own ``single-<ms>`` batch id."""
        path = Path(file_path)
        if not path.is_file():
            raise ConfigurationError(f"File does not exist: {path}", config_key="file_path", config_value=file_path)
        if not is_supported(path):
            raise ConfigurationError(
                f"Unsupported file format: {path.suffix or '<none>'}",
                config_key="file_path",
                config_value=file_path
            )

        batch_id = single_batch_id()
        graph = build_record_graph(
            self.extractor,
            self.skill_extractor,
            CriteriaEvaluator(self.matching_config),
            self.detector,
            self.settings.content_max_chars,
        )
        record, _ = await self._process_item(
            graph, path, batch_id, asyncio.Semaphore(1), self.settings.item_timeout_seconds
        )
        saved, _ = await self._commit_chunk([record])
        self.detector.cache.clear()
        if not saved:
            raise PersistenceError(f"Could not store record for {path.name}", operation="process_single")
        if organize_files:
            await self._organize(saved)
        return record

    async def get_batch_statistics(self, batch_id: str) -> BatchStatistics:
        """Recompute a batch's statistics from its stored records.

        Run outcome (status, skip count, abort reason, timings) comes from the
        stored batch summary when there is one.
        """
        records = await self.repository.find_by_batch_id(batch_id)
        if not records:
            raise RecordNotFoundError(f"No records found for batch {batch_id}", resource="batch", identifier=batch_id)

        summary = await self.repository.find_batch_summary(batch_id)
        if summary is not None:
            return BatchStatistics.from_records(
                batch_id,
                records,
                summary.elapsed_seconds,
                status=summary.status,
                skip_count=summary.skip_count,
                started_at=summary.started_at,
                finished_at=summary.finished_at,
                abort_reason=summary.abort_reason,
            )

        started = min(r.created_at for r in records)
        finished = max(r.updated_at for r in records)
        elapsed = max((finished - started).total_seconds(), 0.0)
        return BatchStatistics.from_records(
            batch_id,
            records,
            elapsed,
            started_at=started,
            finished_at=finished,
        )


def build_pipeline(repository) -> IngestionPipeline:
    """Pipeline wired from the environment configuration."""
    detector = DuplicateDetector(repository, config.load_duplicate_thresholds())
    return IngestionPipeline(
        repository,
        settings=config.load_pipeline_settings(),
        taxonomy=config.load_skill_taxonomy(),
        matching_config=config.load_matching_config(),
        organizer=FileOrganizer(config.load_organizer_settings()),
        detector=detector,
    )
