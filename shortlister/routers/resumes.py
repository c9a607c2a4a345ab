from functools import lru_cache
from typing import Dict, List, Union

from fastapi import APIRouter, BackgroundTasks, Depends

from shortlister.models.models import ResumeStatus
from shortlister.models.schemas import (
    BatchProcessingRequest,
    BatchStartedResponse,
    BatchStatistics,
    DuplicateStats,
    KeywordConfigOverride,
    ProcessFileRequest,
    ReprocessResult,
    ResumeResponse,
)
from shortlister.models.settings import MatchingConfig
from shortlister.services.db import batches_coll, resumes_coll
from shortlister.services.pipeline import IngestionPipeline, build_pipeline, generate_batch_id
from shortlister.services.repository import ResumeRepository
from shortlister.utils.exceptions import (
    ConfigurationError,
    ExceptionContext,
    RecordNotFoundError,
    ShortlisterError,
)
from shortlister.utils.logging_config import get_logger

router = APIRouter(prefix="/api/resumes", tags=["resumes"])
logger = get_logger(__name__)


def get_repository() -> ResumeRepository:
    return ResumeRepository(resumes_coll, batches_coll)


@lru_cache(maxsize=1)
def get_pipeline() -> IngestionPipeline:
    return build_pipeline(get_repository())


def merge_matching_config(base: MatchingConfig, override: KeywordConfigOverride = None) -> MatchingConfig:
    """Apply the per-request keyword overrides on top of the configured criteria."""
    if override is None:
        return base
    return MatchingConfig(
        required=override.required_keywords if override.required_keywords is not None else base.required,
        optional=override.optional_keywords if override.optional_keywords is not None else base.optional,
        excluded=override.excluded_keywords if override.excluded_keywords is not None else base.excluded,
        mode=override.matching_mode or base.mode,
        threshold=override.matching_threshold if override.matching_threshold is not None else base.threshold,
    )


async def _run_in_background(pipeline: IngestionPipeline, **kwargs):
    try:
        await pipeline.run(**kwargs)
    except ShortlisterError as e:
        logger.error(f"Background batch {kwargs.get('batch_id')} failed: {e.message}")


@router.post("/process", response_model=Union[BatchStatistics, BatchStartedResponse])
async def process_batch(
    request: BatchProcessingRequest,
    background_tasks: BackgroundTasks,
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """Process every resume in a directory, synchronously or as a background task"""
    batch_id = request.custom_batch_id or generate_batch_id()
    options = dict(
        input_dir=request.input_directory,
        chunk_size=request.batch_size,
        max_workers=request.max_concurrent_threads,
        batch_id=batch_id,
        matching_config=merge_matching_config(pipeline.matching_config, request.keyword_config),
        skip_duplicate_detection=request.skip_duplicate_detection,
        organize_files=request.organize_files,
        item_timeout_seconds=request.processing_timeout_ms / 1000,
        skip_limit=request.max_error_count,
    )

    if request.run_async:
        # fail fast on a bad directory before handing the batch off
        pipeline.validate(
            request.input_directory,
            request.batch_size,
            request.max_concurrent_threads or pipeline.settings.max_workers,
            batch_id,
        )
        background_tasks.add_task(_run_in_background, pipeline, **options)
        logger.info(f"Batch {batch_id} queued for background processing")
        return BatchStartedResponse(batch_id=batch_id)

    return await pipeline.run(**options)


@router.post("/process-file", response_model=ResumeResponse)
async def process_file(request: ProcessFileRequest, pipeline: IngestionPipeline = Depends(get_pipeline)):
    record = await pipeline.process_single(request.file_path)
    return ResumeResponse.from_record(record)


@router.get("/batches/{batch_id}/stats", response_model=BatchStatistics)
async def batch_stats(batch_id: str, pipeline: IngestionPipeline = Depends(get_pipeline)):
    return await pipeline.get_batch_statistics(batch_id)


@router.get("/status/{status}", response_model=List[ResumeResponse])
async def resumes_by_status(status: str, repository: ResumeRepository = Depends(get_repository)):
    try:
        parsed = ResumeStatus(status.upper())
    except ValueError:
        raise ConfigurationError(
            f"Unknown status '{status}'. Expected one of {[s.value for s in ResumeStatus]}",
            config_key="status",
            config_value=status
        )
    records = await repository.find_by_status(parsed)
    return [ResumeResponse.from_record(r) for r in records]


@router.get("/stats/duplicates", response_model=DuplicateStats)
async def duplicate_stats(pipeline: IngestionPipeline = Depends(get_pipeline)):
    with ExceptionContext("duplicate_stats", logger):
        return await pipeline.detector.get_duplicate_stats()


@router.post("/reprocess-duplicates", response_model=ReprocessResult)
async def reprocess_duplicates(pipeline: IngestionPipeline = Depends(get_pipeline)):
    """Re-run duplicate detection over every stored resume"""
    with ExceptionContext("reprocess_duplicates", logger):
        return await pipeline.detector.reprocess_duplicates()


@router.get("/skills", response_model=Dict[str, List[str]])
async def available_skills(pipeline: IngestionPipeline = Depends(get_pipeline)):
    return {skill: sorted(variants) for skill, variants in sorted(pipeline.taxonomy.skills.items())}


@router.get("/config/matching")
async def matching_configuration(pipeline: IngestionPipeline = Depends(get_pipeline)):
    config = pipeline.matching_config
    return {
        "required_keywords": sorted(config.required),
        "optional_keywords": sorted(config.optional),
        "excluded_keywords": sorted(config.excluded),
        "matching_mode": config.mode.value,
        "matching_threshold": config.threshold,
    }


@router.get("/{record_id}", response_model=ResumeResponse)
async def get_resume(record_id: str, repository: ResumeRepository = Depends(get_repository)):
    record = await repository.find_by_id(record_id)
    if record is None:
        raise RecordNotFoundError(f"Resume {record_id} not found", resource="resume", identifier=record_id)
    return ResumeResponse.from_record(record)
