from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Set

from pydantic import BaseModel, Field

UNKNOWN_EMAIL = "unknown@example.com"
UNKNOWN_PHONE = "N/A"
UNKNOWN_NAME = "Unknown"


class ResumeStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHORTLISTED = "SHORTLISTED"
    DUPLICATE = "DUPLICATE"
    REJECTED = "REJECTED"
    ERROR = "ERROR"


TERMINAL_STATUSES = frozenset({
    ResumeStatus.SHORTLISTED,
    ResumeStatus.DUPLICATE,
    ResumeStatus.REJECTED,
    ResumeStatus.ERROR,
})


class Identity(BaseModel):
    """Contact details pulled out of a resume's text."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class DocumentRecord(BaseModel):
    """One ingested resume file and everything learned about it."""
    id: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    file_name: str
    file_path: str
    file_size_bytes: int = 0
    file_type: str = ""
    content: str = ""
    status: ResumeStatus = ResumeStatus.PENDING
    skills: Set[str] = Field(default_factory=set)
    duplicate_of_id: Optional[str] = None
    similarity_score: Optional[float] = None
    batch_id: Optional[str] = None
    processing_time_ms: Optional[int] = None
    error_message: Optional[str] = None
    processed_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def from_path(cls, path: Path, batch_id: str = None) -> "DocumentRecord":
        path = Path(path)
        size = path.stat().st_size if path.exists() else 0
        return cls(
            file_name=path.name,
            file_path=str(path),
            file_size_bytes=size,
            file_type=path.suffix.lower().lstrip("."),
            batch_id=batch_id,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition_to(self, status: ResumeStatus) -> None:
        # ERROR stays reachable from any state so a failed commit can still be recorded
        if self.is_terminal and status != ResumeStatus.ERROR and status != self.status:
            raise ValueError(f"Cannot move {self.file_name} from {self.status.value} to {status.value}")
        self.status = status
        self.updated_at = datetime.utcnow()

    def mark_duplicate(self, original_id: str, score: float) -> None:
        self.transition_to(ResumeStatus.DUPLICATE)
        self.duplicate_of_id = original_id
        self.similarity_score = score

    def mark_error(self, message: str) -> None:
        self.transition_to(ResumeStatus.ERROR)
        self.error_message = message
        self.duplicate_of_id = None
        self.similarity_score = None

    def reset_for_reprocessing(self) -> None:
        """Put a committed record back into PROCESSING for a duplicate replay."""
        self.status = ResumeStatus.PROCESSING
        self.duplicate_of_id = None
        self.similarity_score = None
        self.updated_at = datetime.utcnow()
