"""
Per-resume processing graph.

    extract -> evaluate -> dedupe -> finalize

Nodes only record what they found in the state; ``finalize`` is the single
place where the record's status changes.
"""
import asyncio
from concurrent.futures import Executor
from pathlib import Path
from typing import Optional, TypedDict

from langgraph.graph import StateGraph, END

from shortlister.helpers.parsing import TextExtractor
from shortlister.models.models import DocumentRecord, ResumeStatus
from shortlister.services.duplicates import DuplicateDetector
from shortlister.services.identity import ensure_required_fields, extract_identity
from shortlister.services.matching import CriteriaEvaluator, SkillExtractor, Verdict
from shortlister.utils.logging_config import get_logger

logger = get_logger(__name__)

TRUNCATION_SUFFIX = "... [TRUNCATED]"


class RecordState(TypedDict, total=False):
    path: str
    record: DocumentRecord
    text: str
    verdict: Verdict
    duplicate_of: Optional[DocumentRecord]
    similarity_score: Optional[float]


def truncate_content(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_SUFFIX


def build_record_graph(
    extractor: TextExtractor,
    skill_extractor: SkillExtractor,
    evaluator: CriteriaEvaluator,
    detector: Optional[DuplicateDetector],
    content_max_chars: int = 1_000_000,
    executor: Optional[Executor] = None,
):
    """Compile the graph for one batch; pass ``detector=None`` to skip duplicate checks.

    Text extraction runs on ``executor`` when given, otherwise on the default
    thread pool.
    """

    async def node_extract(state: RecordState):
        record = state["record"]
        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(executor, extractor.extract, Path(state["path"]))
        identity = extract_identity(text)
        record.full_name = identity.name
        record.email = identity.email
        record.phone_number = identity.phone
        ensure_required_fields(record)
        record.content = truncate_content(text, content_max_chars)
        return {"record": record, "text": text}

    async def node_evaluate(state: RecordState):
        record = state["record"]
        record.skills = skill_extractor.extract(state["text"])
        verdict = evaluator.evaluate(record.skills, state["text"])
        logger.debug(f"{record.file_name}: shortlisted={verdict.shortlisted} ({verdict.reason})")
        return {"record": record, "verdict": verdict}

    async def node_dedupe(state: RecordState):
        record = state["record"]
        match = await detector.find_duplicate(record)
        if match is None:
            return {"duplicate_of": None, "similarity_score": None}
        score = detector.calculate_similarity_score(record, match)
        return {"duplicate_of": match, "similarity_score": score}

    async def node_finalize(state: RecordState):
        record = state["record"]
        match = state.get("duplicate_of")
        if match is not None:
            record.mark_duplicate(match.id, state.get("similarity_score") or 0.0)
            logger.info(
                f"Duplicate detected: {record.file_name} is similar to record {match.id} "
                f"(score {record.similarity_score:.1f})"
            )
        else:
            shortlisted = state["verdict"].shortlisted
            record.transition_to(ResumeStatus.SHORTLISTED if shortlisted else ResumeStatus.REJECTED)
        return {"record": record}

    g = StateGraph(RecordState)
    g.add_node("extract", node_extract)
    g.add_node("evaluate", node_evaluate)
    g.add_node("finalize", node_finalize)
    g.set_entry_point("extract")
    g.add_edge("extract", "evaluate")
    if detector is not None:
        g.add_node("dedupe", node_dedupe)
        g.add_edge("evaluate", "dedupe")
        g.add_edge("dedupe", "finalize")
    else:
        g.add_edge("evaluate", "finalize")
    g.add_edge("finalize", END)
    return g.compile()
