import logging
import re
from pathlib import Path
from typing import List

from docx import Document
from pdfminer.high_level import extract_text as pdf_extract

from shortlister.utils.exceptions import ExtractionError
from shortlister.utils.logging_config import PerformanceMonitor, get_logger

logging.getLogger("pdfminer").setLevel(logging.ERROR)
logger = get_logger(__name__)

SUPPORTED_EXTENSIONS = (".pdf", ".docx", ".doc", ".txt", ".rtf")
MAX_FILE_SIZE_BYTES = 50 * 1024 * 1024


def is_supported(p: Path) -> bool:
    return Path(p).suffix.lower() in SUPPORTED_EXTENSIONS


def read_txt(p: Path) -> str:
    return p.read_text(errors="ignore")


def read_docx(p: Path) -> str:
    doc = Document(str(p))
    return "\n".join([para.text for para in doc.paragraphs])


def read_with_unstructured(p: Path) -> str:
    # unstructured pulls in heavy optional deps, so only import it when needed
    from unstructured.partition.auto import partition
    elems = partition(filename=str(p))
    return "\n".join([e.text for e in elems if hasattr(e, "text") and e.text])


def read_pdf(p: Path) -> str:
    try:
        return pdf_extract(str(p))
    except Exception as e:
        logger.debug(f"pdfminer failed on {p.name} ({e}), falling back to unstructured")
        return read_with_unstructured(p)


READERS = {
    ".txt": read_txt,
    ".pdf": read_pdf,
    ".docx": read_docx,
    ".doc": read_with_unstructured,
    ".rtf": read_with_unstructured,
}


def clean_text(x: str) -> str:
    """Normalize line breaks, squeeze spaces within lines and drop blank lines."""
    x = re.sub(r'\r\n|\r', '\n', x)
    lines = [re.sub(r'[ \t\f\v ]+', ' ', line).strip() for line in x.split('\n')]
    return "\n".join(line for line in lines if line)


def list_resume_files(folder) -> List[Path]:
    """Supported files directly inside ``folder``, sorted by name."""
    return sorted(
        (p for p in Path(folder).iterdir() if p.is_file() and is_supported(p)),
        key=lambda p: p.name
    )


class TextExtractor:
    """Turns a resume document on disk into cleaned plain text."""

    def __init__(self, max_file_size: int = MAX_FILE_SIZE_BYTES):
        self.max_file_size = max_file_size

    def extract(self, path) -> str:
        p = Path(path)
        if not p.is_file():
            raise ExtractionError(f"File does not exist: {p}", file_path=p)

        size = p.stat().st_size
        if size == 0:
            raise ExtractionError(f"File is empty: {p}", file_path=p)
        if size > self.max_file_size:
            raise ExtractionError(f"File too large: {p} ({size} bytes)", file_path=p)

        ext = p.suffix.lower()
        reader = READERS.get(ext)
        if reader is None:
            raise ExtractionError(f"Unsupported file format: {ext or '<none>'}", file_path=p, file_type=ext)

        try:
            with PerformanceMonitor(f"extract {p.name}", logger, threshold_ms=5000):
                raw = reader(p)
        except Exception as e:
            raise ExtractionError(f"Failed to parse document: {p}", file_path=p, file_type=ext, cause=e) from e

        text = clean_text(raw or "")
        if not text:
            raise ExtractionError(f"No content extracted from: {p}", file_path=p, file_type=ext)

        logger.debug(f"Extracted {len(text)} chars from {p.name}")
        return text
