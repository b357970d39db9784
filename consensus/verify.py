"""Deep verify: reject placeholder drafts and score facts against truth patterns."""

import logging
import re
from collections.abc import Sequence

from consensus.errors import StageError
from consensus.events import Emitter
from consensus.models import Fact, VerifiedFact
from consensus.scoring import clamp01
from consensus.text import normalize_key

logger = logging.getLogger(__name__)

STEP = 6

VERIFIED_THRESHOLD = 0.55
MAX_CHECKED = 60
SHOW_VERIFIED = 14
SHOW_FLAGGED = 10

_PLACEHOLDERS = (
    re.compile(r"\bTODO:", re.IGNORECASE),
    re.compile(r"\bTBD:", re.IGNORECASE),
    re.compile(r"\bPLACEHOLDER:", re.IGNORECASE),
    re.compile(r"\[TODO\]", re.IGNORECASE),
    re.compile(r"\[TBD\]", re.IGNORECASE),
    re.compile(r"\[PLACEHOLDER\]", re.IGNORECASE),
    re.compile(r"\blorem ipsum\b", re.IGNORECASE),
    re.compile(r"\bXXX\b"),
    re.compile(r"\bFIXME\b", re.IGNORECASE),
    re.compile(r"INSERT_.*_HERE", re.IGNORECASE),
    re.compile(r"\[\.{3}\]"),
)

# (id, weight, pattern)
TRUTH_PATTERNS: tuple[tuple[str, float, re.Pattern[str]], ...] = (
    ("sse", 0.9, re.compile(r"\b(eventsource|text/event-stream|sse)\b", re.IGNORECASE)),
    ("env", 0.85, re.compile(r"(\bprocess\.env\b|\bdotenv\b|\.env\b)", re.IGNORECASE)),
    ("http", 0.75, re.compile(r"(http://localhost:\d+|/api/)", re.IGNORECASE)),
    ("code", 0.8, re.compile(r"\b(npm run|pip install|package\.json|pyproject\.toml|next\.js|express)\b", re.IGNORECASE)),
    ("steps", 0.7, re.compile(r"\b(step\s*\d+|10-step|pipeline)\b", re.IGNORECASE)),
    ("safety", 0.6, re.compile(r"\b(redact|sanitize|profanity|bias|hallucination)\b", re.IGNORECASE)),
)
TRUTH_NORMALIZER = 2.2
_ABSOLUTES = re.compile(r"\b(always|never|guarantee|impossible)\b|100%", re.IGNORECASE)
ABSOLUTE_PENALTY = 0.15


def has_placeholders(text: str) -> bool:
    return any(p.search(text or "") for p in _PLACEHOLDERS)


def truth_score(text: str) -> tuple[float, list[str]]:
    """Score a fact by which truth patterns it matches. Returns (score, hit ids)."""
    if not (text or "").strip():
        return 0.0, []
    hits = [pid for pid, _, pattern in TRUTH_PATTERNS if pattern.search(text)]
    raw = sum(weight for pid, weight, _ in TRUTH_PATTERNS if pid in hits)
    penalty = ABSOLUTE_PENALTY if _ABSOLUTES.search(text) else 0.0
    return clamp01(raw / TRUTH_NORMALIZER - penalty), hits


def verify_fact(fact: Fact) -> VerifiedFact:
    score, hits = truth_score(fact.text)
    return VerifiedFact(
        text=fact.text,
        confidence=fact.confidence,
        truth_score=score,
        final_score=clamp01(fact.confidence * 0.65 + score * 0.35),
        hits=tuple(hits),
        source_agent=fact.source_agent,
        source_model=fact.source_model,
    )


def _too_many_constraints(text: str) -> bool:
    key = normalize_key(text)
    return "must" in key and "cannot" in key and key.count("must") > 3


def verify(draft: str, accepted: Sequence[Fact], emitter: Emitter | None = None) -> str:
    """Append a verification report to the draft.

    Raises:
        StageError: Empty draft, placeholder markers, or a report dense with
            contradictory "must"/"cannot" constraints.
    """
    emitter = emitter or Emitter()
    if not (draft or "").strip():
        raise StageError("Verify failed: missing draft")

    emitter.log(STEP, "Deep verify engaged. Matching facts against truth patterns.")

    if has_placeholders(draft):
        raise StageError("Verify failed: draft contains placeholders")

    verified: list[VerifiedFact] = []
    flagged: list[VerifiedFact] = []
    for fact in accepted[:MAX_CHECKED]:
        item = verify_fact(fact)
        (verified if item.final_score >= VERIFIED_THRESHOLD else flagged).append(item)

    emitter.log(STEP, f"Verification complete. Verified: {len(verified)}. Flagged: {len(flagged)}.")
    logger.info("Verify: %d verified, %d flagged", len(verified), len(flagged))

    out = "\n".join(
        [
            draft,
            "",
            "## Deep Verify Report",
            f"- Verified facts: {len(verified)}",
            f"- Flagged facts: {len(flagged)}",
            "",
            "### Verified",
            *(f"- ({v.final_score:.2f}) {v.text}" for v in verified[:SHOW_VERIFIED]),
            "",
            "### Flagged",
            *(f"- ({v.final_score:.2f}) {v.text}" for v in flagged[:SHOW_FLAGGED]),
        ]
    )

    if _too_many_constraints(out):
        raise StageError("Verify failed: contradictory constraints density too high")
    return out
