"""
Identity extraction: email, phone and candidate name from resume text.

Everything here is a pure function of its input so it can run on worker
threads without coordination.
"""
import re
from pathlib import Path
from typing import Optional

from shortlister.models.models import (
    DocumentRecord,
    Identity,
    UNKNOWN_EMAIL,
    UNKNOWN_NAME,
    UNKNOWN_PHONE,
)
from shortlister.utils.logging_config import get_logger

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")

# Tried in order; the first pattern with any match wins. The "?" variants
# cover text where the extractor replaced phone punctuation with "?".
PHONE_PATTERNS = [
    re.compile(r"\?1\?\d{3}\?\d{3}\?\d{4}"),
    re.compile(r"[+?]1[-.\s?]\d{3}[-.\s?]\d{3}[-.\s?]\d{4}"),
    re.compile(r"[+?]94[-.\s?]\d{2}[-.\s?]\d{7}"),
    re.compile(r"[+?]94[-.\s?]\d{3}[-.\s?]\d{6}"),
    re.compile(r"\+1[-.\s]\d{3}[-.\s]\d{3}[-.\s]\d{4}"),
    re.compile(r"\d{3}[-.\s]\d{3}[-.\s]\d{4}"),
    re.compile(r"\(\d{3}\)\s?\d{3}[-.\s]\d{4}"),
]

US_NUMBER = re.compile(r"1(\d{3})(\d{3})(\d{4})")

NAME_PATTERN = re.compile(r"^([A-Z][a-z]+ [A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)")
PLAIN_NAME_LINE = re.compile(r"^[A-Za-z\s]{3,50}$")
HEADER_WORDS = re.compile(r"\b(?:curriculum|resume|cv)\b", re.IGNORECASE)
NAME_SCAN_LINES = 5

FILENAME_NAME_PATTERNS = [
    re.compile(r"([A-Z][a-z]+\s+[A-Z][a-z]+)_.*"),
    re.compile(r"([A-Z][a-z]+)_([A-Z][a-z]+)_.*"),
    re.compile(r"([A-Z][a-z]+)([A-Z][a-z]+)-.*"),
    re.compile(r"([A-Z][a-z]+\s+[A-Z][a-z]+)"),
    re.compile(r"([A-Z][a-z]+_[A-Z][a-z]+)"),
    re.compile(r"([A-Z][a-z]+-[A-Z][a-z]+)"),
]


def extract_email(text: str) -> Optional[str]:
    if not text:
        return None
    match = EMAIL_PATTERN.search(text)
    return match.group().lower() if match else None


def format_phone_number(raw: str) -> str:
    """Digits only, dashed as +1-XXX-XXX-XXXX when it is an 11-digit US number."""
    digits = re.sub(r"\D", "", raw)
    us = US_NUMBER.fullmatch(digits)
    if us:
        return "+1-{}-{}-{}".format(*us.groups())
    return digits


def extract_phone_number(text: str) -> Optional[str]:
    if not text:
        return None
    for pattern in PHONE_PATTERNS:
        match = pattern.search(text)
        if match:
            phone = format_phone_number(match.group())
            logger.debug(f"Phone pattern {pattern.pattern!r} matched {match.group()!r} -> {phone!r}")
            return phone
    return None


def extract_name(text: str) -> Optional[str]:
    if not text:
        return None

    for line in text.split("\n")[:NAME_SCAN_LINES]:
        line = line.strip()
        if not line or HEADER_WORDS.search(line):
            continue

        match = NAME_PATTERN.match(line)
        if match:
            return match.group(1).strip()

        if PLAIN_NAME_LINE.match(line) and len(line.split()) >= 2:
            return line
    return None


def extract_identity(text: str) -> Identity:
    return Identity(
        name=extract_name(text),
        email=extract_email(text),
        phone=extract_phone_number(text),
    )


def _fallback_name(stem: str) -> str:
    return re.sub(r"[_\-]", " ", stem).strip()


def name_from_filename(file_name: str) -> Optional[str]:
    """Best-effort candidate name from a file name such as ``John_Smith_CV.pdf``."""
    if not file_name or not file_name.strip():
        return None

    stem = re.sub(r"\.[^.]+$", "", file_name)
    for pattern in FILENAME_NAME_PATTERNS:
        match = pattern.search(stem)
        if match:
            name = " ".join(g for g in match.groups() if g)
            return re.sub(r"[_-]", " ", name).strip()

    parts = [p for p in re.split(r"[_\-\s]+", stem) if p]
    if len(parts) >= 2:
        return f"{parts[0]} {parts[1]}"
    return _fallback_name(stem) or None


def ensure_required_fields(record: DocumentRecord) -> DocumentRecord:
    """Fill name, email and phone so no persisted record carries blanks."""
    name = (record.full_name or "").strip()
    if not name:
        name = name_from_filename(record.file_name) or _fallback_name(Path(record.file_name).stem)
    record.full_name = name or UNKNOWN_NAME

    record.email = (record.email or "").strip() or UNKNOWN_EMAIL
    record.phone_number = (record.phone_number or "").strip() or UNKNOWN_PHONE
    return record
