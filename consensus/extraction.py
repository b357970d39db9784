"""Deconstruct agent replies into atomic, scored facts."""

import logging
import re
from collections.abc import Sequence

from consensus.errors import ExtractionError
from consensus.events import Emitter
from consensus.models import AgentExecution, Fact
from consensus.scoring import CandidateFact, score_facts
from consensus.text import normalize_text, tokenize_words

logger = logging.getLogger(__name__)

STEP = 2

MIN_FACT_CHARS = 12
MAX_FACT_CHARS = 420

_SEGMENT_SPLIT = re.compile(r"\n|(?<=[.!?])\s+")
_LIST_MARKER = re.compile(r"^[-*\d.)\s]+")
_CLAUSE_SPLIT = re.compile(r";\s+|,\s+(?=[A-Z0-9])")


def _in_band(segment: str) -> bool:
    return MIN_FACT_CHARS <= len(segment) <= MAX_FACT_CHARS


def split_into_facts(text: str) -> list[str]:
    """Split free text into sentence-like claims within the length band."""
    normalized = normalize_text(text)
    if not normalized:
        return []

    parts = [_LIST_MARKER.sub("", p).strip() for p in _SEGMENT_SPLIT.split(normalized)]

    facts: list[str] = []
    for part in parts:
        if len(part) < MIN_FACT_CHARS:
            continue
        if len(part) > MAX_FACT_CHARS:
            # run-on: break at clause boundaries before giving up on it
            sub = [s.strip() for s in _CLAUSE_SPLIT.split(part)]
            facts.extend(s for s in sub if _in_band(s))
            continue
        facts.append(part)
    return facts


def extract_facts(executions: Sequence[AgentExecution], emitter: Emitter | None = None) -> list[Fact]:
    """Segment each completed execution and score the resulting facts.

    Returns:
        Facts sorted by confidence, highest first.

    Raises:
        ExtractionError: If there are no completed executions or no facts.
    """
    emitter = emitter or Emitter()
    completed = [e for e in executions if e.ok]
    if not completed:
        raise ExtractionError("No swarm executions to deconstruct")

    emitter.log(STEP, "Segmenting agent responses into fact units.")

    candidates: list[CandidateFact] = []
    for execution in completed:
        segments = split_into_facts(execution.content)
        logger.debug("Agent %s yielded %d segments", execution.agent_id, len(segments))
        candidates.extend(
            CandidateFact(
                text=segment,
                words=tuple(tokenize_words(segment)),
                source_agent=execution.agent_id,
                source_model=execution.model_used,
            )
            for segment in segments
        )

    emitter.log(STEP, f"Computing cross-agent agreement over {len(candidates)} segments (Jaccard similarity).")

    facts = sorted(score_facts(candidates), key=lambda f: f.confidence, reverse=True)
    if not facts:
        raise ExtractionError("Could not extract any facts")

    emitter.log(STEP, f"Extracted {len(facts)} facts. Top confidence {facts[0].confidence:.2f}.")
    logger.info("Extracted %d facts from %d executions", len(facts), len(completed))
    return facts
