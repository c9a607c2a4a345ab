import os

os.environ.setdefault("ENVIRONMENT", "testing")

import pytest

from shortlister.models.models import DocumentRecord, ResumeStatus
from shortlister.models.schemas import BatchStatistics
from shortlister.models.settings import OrganizerSettings, PipelineSettings
from shortlister.services.duplicates import DuplicateDetector, usable_phone
from shortlister.services.organizer import FileOrganizer
from shortlister.services.pipeline import IngestionPipeline
from shortlister.services.repository import assign_id
from shortlister.utils.exceptions import PersistenceError


def _order_key(r: DocumentRecord):
    return (r.created_at, r.id)


class InMemoryRepository:
    """Repository fake keeping records in memory, ordered like the Mongo one."""

    def __init__(self):
        self.records = {}
        self.batches = {}
        self.fail_save_many = False
        self.fail_save_for = set()
        self.save_many_calls = 0

    def _before(self, records, before):
        if before is None:
            return records
        if before.id is None:
            return [r for r in records if r.created_at < before.created_at]
        return [r for r in records if _order_key(r) < _order_key(before)]

    def _all(self, before=None):
        ordered = sorted(self.records.values(), key=_order_key)
        return [r.model_copy(deep=True) for r in self._before(ordered, before)]

    async def save(self, record):
        if record.file_name in self.fail_save_for:
            raise PersistenceError(f"cannot save {record.file_name}", operation="save")
        assign_id(record)
        self.records[record.id] = record.model_copy(deep=True)
        return record

    async def save_many(self, records):
        self.save_many_calls += 1
        if self.fail_save_many:
            raise PersistenceError("bulk write rejected", operation="save_many")
        for r in records:
            assign_id(r)
        for r in records:
            self.records[r.id] = r.model_copy(deep=True)
        return records

    async def find_by_id(self, record_id):
        r = self.records.get(record_id)
        return r.model_copy(deep=True) if r else None

    async def find_by_status(self, status):
        return [r for r in self._all() if r.status == status]

    async def find_by_batch_id(self, batch_id):
        return [r for r in self._all() if r.batch_id == batch_id]

    async def find_by_email(self, email, before=None):
        email = email.strip().lower()
        return [r for r in self._all(before) if (r.email or "").lower() == email]

    async def find_by_normalized_phone(self, phone, before=None):
        return [r for r in self._all(before) if usable_phone(r) == phone]

    async def find_all_non_duplicate_ordered(self, before=None):
        return [r for r in self._all(before) if r.status != ResumeStatus.DUPLICATE]

    async def find_all_ordered(self):
        return self._all()

    async def count(self):
        return len(self.records)

    async def count_by_status(self, status):
        return sum(1 for r in self.records.values() if r.status == status)

    async def save_batch_summary(self, stats: BatchStatistics):
        self.batches[stats.batch_id] = stats

    async def find_batch_summary(self, batch_id):
        return self.batches.get(batch_id)


def make_record(name=None, email=None, phone=None, file_name="resume.txt", status=ResumeStatus.SHORTLISTED, **kwargs):
    return DocumentRecord(
        full_name=name,
        email=email,
        phone_number=phone,
        file_name=file_name,
        file_path=f"/tmp/{file_name}",
        status=status,
        **kwargs
    )


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def detector(repository):
    return DuplicateDetector(repository)


@pytest.fixture
def resume_dir(tmp_path):
    folder = tmp_path / "incoming"
    folder.mkdir()
    return folder


@pytest.fixture
def write_resume(resume_dir):
    def _write(file_name, text):
        path = resume_dir / file_name
        path.write_text(text, encoding="utf-8")
        return path
    return _write


@pytest.fixture
def pipeline_factory(repository, tmp_path):
    def _build(**overrides):
        settings = overrides.pop("settings", PipelineSettings(max_workers=4))
        organizer = overrides.pop("organizer", FileOrganizer(OrganizerSettings(enabled=False)))
        return IngestionPipeline(repository, settings=settings, organizer=organizer, **overrides)
    return _build
