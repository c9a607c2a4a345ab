import os
from pathlib import Path
from typing import List, Tuple

import pandas as pd

from shortlister.models.models import DocumentRecord
from shortlister.models.schemas import BatchStatistics
from shortlister.utils.logging_config import get_logger

logger = get_logger(__name__)

REPORT_COLUMNS = [
    "file_name", "full_name", "email", "phone_number", "status", "skills",
    "duplicate_of_id", "similarity_score", "processing_time_ms", "error_message",
]


def write_batch_report(stats: BatchStatistics, records: List[DocumentRecord], report_dir: str) -> Tuple[str, str]:
    """Write ``<batch>_report.csv`` and ``<batch>_summary.md`` into ``report_dir``."""
    Path(report_dir).mkdir(parents=True, exist_ok=True)

    data = [{
        "file_name": r.file_name,
        "full_name": r.full_name,
        "email": r.email,
        "phone_number": r.phone_number,
        "status": r.status.value,
        "skills": ", ".join(sorted(r.skills)),
        "duplicate_of_id": r.duplicate_of_id,
        "similarity_score": round(r.similarity_score, 2) if r.similarity_score is not None else None,
        "processing_time_ms": r.processing_time_ms,
        "error_message": r.error_message,
    } for r in records] if records else []

    df = pd.DataFrame(data, columns=REPORT_COLUMNS)

    csv_path = os.path.join(report_dir, f"{stats.batch_id}_report.csv")
    if len(df):
        df.sort_values(["status", "file_name"]).to_csv(csv_path, index=False)
    else:
        df.to_csv(csv_path, index=False)  # empty file with headers

    md_lines = [
        f"# Batch {stats.batch_id}",
        f"**Status**: {stats.status.value}",
        "",
        "| Total | Shortlisted | Duplicates | Rejected | Errors | Skipped | Avg ms | Files/s |",
        "|---:|---:|---:|---:|---:|---:|---:|---:|",
        f"| {stats.total_cvs} | {stats.shortlisted} | {stats.duplicates} | {stats.rejected} | {stats.errors} "
        f"| {stats.skip_count} | {stats.average_processing_time_ms:.1f} | {stats.throughput_per_second:.2f} |",
        "",
    ]
    if stats.abort_reason:
        md_lines.append(f"> Aborted: {stats.abort_reason}\n")

    shortlisted = df[df["status"] == "SHORTLISTED"] if len(df) else df
    if len(shortlisted):
        md_lines += ["## Shortlisted", "", "| File | Name | Skills |", "|---|---|---|"]
        for r in shortlisted.sort_values("file_name").itertuples():
            md_lines.append(f"| {r.file_name} | {r.full_name} | {r.skills} |")
    else:
        md_lines.append("> No resumes were shortlisted in this batch.")

    skills = df["skills"].str.split(", ").explode() if len(df) else pd.Series(dtype=str)
    skills = skills[skills.astype(bool)] if len(skills) else skills
    if len(skills):
        md_lines += ["", "## Top skills", ""]
        for skill, count in skills.value_counts().head(10).items():
            md_lines.append(f"- {skill}: {count}")

    md_path = os.path.join(report_dir, f"{stats.batch_id}_summary.md")
    Path(md_path).write_text("\n".join(md_lines), encoding="utf-8")
    logger.info(f"Batch report written to {csv_path} and {md_path}")
    return csv_path, md_path
