import shutil
from datetime import date
from pathlib import Path
from typing import Callable, Optional

from shortlister.models.models import DocumentRecord, ResumeStatus
from shortlister.models.settings import OrganizerSettings
from shortlister.utils.exceptions import OrganizationError
from shortlister.utils.logging_config import get_logger

logger = get_logger(__name__)

MAX_RENAME_ATTEMPTS = 1000


class FileOrganizer:
    """Moves processed resumes into per-status folders under the output directory."""

    def __init__(self, settings: OrganizerSettings = None, today: Callable[[], date] = date.today):
        self.settings = settings or OrganizerSettings()
        self.today = today

    def target_directory(self, status: ResumeStatus) -> Path:
        s = self.settings
        folder = {
            ResumeStatus.SHORTLISTED: s.shortlisted_dir,
            ResumeStatus.DUPLICATE: s.duplicates_dir,
            ResumeStatus.ERROR: s.errors_dir,
        }.get(status, s.others_dir)

        target = Path(s.output_dir) / folder
        if s.create_date_folders:
            target = target / self.today().isoformat()
        return target

    @staticmethod
    def resolve_conflict(target: Path) -> Path:
        if not target.exists():
            return target
        for n in range(1, MAX_RENAME_ATTEMPTS):
            candidate = target.with_name(f"{target.stem}_{n}{target.suffix}")
            if not candidate.exists():
                return candidate
        raise OrganizationError(f"No free file name for {target.name}", target=target)

    def organize(self, record: DocumentRecord) -> Optional[Path]:
        """Move the record's source file; returns the new path, or None if nothing moved."""
        if not self.settings.enabled:
            logger.debug(f"File organization disabled, leaving {record.file_name} in place")
            return None
        if not record.file_path:
            logger.warning(f"Record {record.file_name} has no file path, cannot organize")
            return None

        source = Path(record.file_path)
        if not source.exists():
            logger.warning(f"Source file does not exist: {source}")
            return None

        target = None
        try:
            directory = self.target_directory(record.status)
            directory.mkdir(parents=True, exist_ok=True)
            target = self.resolve_conflict(directory / record.file_name)
            shutil.move(str(source), str(target))
        except OrganizationError:
            raise
        except OSError as e:
            raise OrganizationError(
                f"Failed to organize file {record.file_name}: {e}",
                source=source,
                target=target,
                cause=e
            ) from e

        logger.info(f"Organized {record.file_name} to {target}")
        return target
