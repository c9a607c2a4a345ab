from pydantic import BaseModel, Field
from typing import Iterable, List, Optional
from datetime import datetime
from enum import Enum

from shortlister.models.models import DocumentRecord, ResumeStatus

CONTENT_PREVIEW_CHARS = 500


# -------- Batches --------
class BatchRunStatus(str, Enum):
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
    ABORTED = "ABORTED"


class BatchStatistics(BaseModel):
    batch_id: str
    status: BatchRunStatus = BatchRunStatus.COMPLETED
    total_cvs: int = 0
    shortlisted: int = 0
    duplicates: int = 0
    rejected: int = 0
    errors: int = 0
    skip_count: int = 0
    average_processing_time_ms: float = 0.0
    throughput_per_second: float = 0.0
    elapsed_seconds: float = 0.0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    abort_reason: Optional[str] = None

    @classmethod
    def from_records(
        cls,
        batch_id: str,
        records: Iterable[DocumentRecord],
        elapsed_seconds: float,
        **extra
    ) -> "BatchStatistics":
        """Aggregate per-status counts and timings over a batch's records."""
        records = list(records)
        counts = {s: 0 for s in ResumeStatus}
        for r in records:
            counts[r.status] += 1
        timings = [r.processing_time_ms for r in records if r.processing_time_ms is not None]
        total = len(records)
        return cls(
            batch_id=batch_id,
            total_cvs=total,
            shortlisted=counts[ResumeStatus.SHORTLISTED],
            duplicates=counts[ResumeStatus.DUPLICATE],
            rejected=counts[ResumeStatus.REJECTED],
            errors=counts[ResumeStatus.ERROR],
            average_processing_time_ms=(sum(timings) / len(timings)) if timings else 0.0,
            # sub-second runs are reported as if they took one second
            throughput_per_second=total / max(elapsed_seconds, 1.0),
            elapsed_seconds=elapsed_seconds,
            **extra
        )


class KeywordConfigOverride(BaseModel):
    required_keywords: Optional[str] = None
    optional_keywords: Optional[str] = None
    excluded_keywords: Optional[str] = None
    matching_mode: Optional[str] = Field(default=None, pattern=r"^(AND|OR|WEIGHTED|and|or|weighted)$")
    matching_threshold: Optional[int] = Field(default=None, ge=0, le=100)


class BatchProcessingRequest(BaseModel):
    input_directory: str = Field(..., min_length=1)
    batch_size: int = Field(default=10, ge=1, le=100)
    max_concurrent_threads: Optional[int] = Field(default=None, ge=1, le=50)
    custom_batch_id: Optional[str] = Field(default=None, pattern=r"^[a-zA-Z0-9_-]+$")
    keyword_config: Optional[KeywordConfigOverride] = None
    skip_duplicate_detection: bool = False
    organize_files: bool = True
    processing_timeout_ms: int = Field(default=30000, ge=1000, le=300000)
    max_error_count: int = Field(default=50, ge=1, le=1000)
    run_async: bool = False


class ProcessFileRequest(BaseModel):
    file_path: str = Field(..., min_length=1)


class BatchStartedResponse(BaseModel):
    batch_id: str
    status: BatchRunStatus = BatchRunStatus.STARTED
    message: str = "Batch processing started"


# -------- Duplicates --------
class DuplicateStats(BaseModel):
    total_cvs: int
    unique_cvs: int
    duplicate_cvs: int
    duplicate_percentage: float


class ReprocessResult(BaseModel):
    processed: int
    duplicates_found: int


# -------- Resumes --------
class ResumeResponse(BaseModel):
    id: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    file_name: str
    file_type: str
    file_size_bytes: int
    status: ResumeStatus
    skills: List[str] = []
    duplicate_of_id: Optional[str] = None
    similarity_score: Optional[float] = None
    processing_time_ms: Optional[int] = None
    batch_id: Optional[str] = None
    processed_by: Optional[str] = None
    error_message: Optional[str] = None
    content_preview: str = ""
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: DocumentRecord) -> "ResumeResponse":
        data = record.model_dump(exclude={"content", "file_path", "skills"})
        content = record.content or ""
        preview = content[:CONTENT_PREVIEW_CHARS] + ("..." if len(content) > CONTENT_PREVIEW_CHARS else "")
        return cls(**data, skills=sorted(record.skills), content_preview=preview)
