"""Refine and format: deterministic rewrites of the verified draft."""

import logging
import re
from collections.abc import Sequence

from consensus.errors import StageError
from consensus.events import Emitter
from consensus.models import Fact
from consensus.text import normalize_whitespace

logger = logging.getLogger(__name__)

REFINE_STEP = 7
FORMAT_STEP = 8

TABLE_ROWS = 16
TABLE_FACT_THRESHOLD = 10

_VERB_MAP = (
    (re.compile(r"\buse\b", re.IGNORECASE), "apply"),
    (re.compile(r"\bmake\b", re.IGNORECASE), "construct"),
    (re.compile(r"\bdo\b", re.IGNORECASE), "execute"),
    (re.compile(r"\bget\b", re.IGNORECASE), "derive"),
    (re.compile(r"\bhelp\b", re.IGNORECASE), "enable"),
    (re.compile(r"\btry\b", re.IGNORECASE), "attempt"),
    (re.compile(r"\bvery\b", re.IGNORECASE), ""),
)

_ACTIVE_VOICE = (
    (re.compile(r"\bit is recommended to\b", re.IGNORECASE), "You should"),
    (re.compile(r"\bshould be\b", re.IGNORECASE), "must be"),
    (re.compile(r"\bis being\b", re.IGNORECASE), "is"),
    (re.compile(r"\bwas done\b", re.IGNORECASE), "executed"),
)

_URGENT_WORDS = ("critical", "urgent", "overhaul", "immediately")
_SHOULD = re.compile(r"\bshould\b", re.IGNORECASE)

_TABLE_WORDS = ("table", "tabular", "matrix")


def strengthen_verbs(text: str) -> str:
    for pattern, replacement in _VERB_MAP:
        text = pattern.sub(replacement, text)
    return text


def enforce_active_voice(text: str) -> str:
    for pattern, replacement in _ACTIVE_VOICE:
        text = pattern.sub(replacement, text)
    return text


def is_urgent(query: str) -> bool:
    q = (query or "").lower()
    return any(word in q for word in _URGENT_WORDS)


def adjust_tone(text: str, query: str) -> str:
    if not is_urgent(query):
        return text
    return _SHOULD.sub("must", text)


def refine(verified: str, query: str, emitter: Emitter | None = None) -> str:
    """Strengthen verbs, enforce active voice and calibrate tone to the query.

    Raises:
        StageError: If the verified draft is empty.
    """
    emitter = emitter or Emitter()
    if not (verified or "").strip():
        raise StageError("Refine failed: missing verified draft")

    emitter.log(REFINE_STEP, "Refine engaged. Strengthening verbs and enforcing active voice.")
    out = strengthen_verbs(verified)
    emitter.log(REFINE_STEP, "Running tone calibration and whitespace normalization.")
    out = enforce_active_voice(out)
    out = adjust_tone(out, query)
    return normalize_whitespace(out)


def wants_table(query: str, accepted: Sequence[Fact]) -> bool:
    q = (query or "").lower()
    if "|" in q or any(word in q for word in _TABLE_WORDS):
        return True
    return len(accepted) >= TABLE_FACT_THRESHOLD


def to_markdown_table(facts: Sequence[Fact]) -> str:
    rows = [
        "| Fact | Confidence | Agent | Model |",
        "|---|---:|---|---|",
    ]
    for fact in facts:
        text = fact.text.replace("|", "\\|")
        rows.append(
            f"| {text} | {fact.confidence:.2f} | {fact.source_agent or 'unknown'} | {fact.source_model or 'unknown'} |"
        )
    return "\n".join(rows)


def format_output(refined: str, query: str, accepted: Sequence[Fact], emitter: Emitter | None = None) -> str:
    """Normalise blank lines and append a fact matrix when a table is wanted.

    Raises:
        StageError: If the refined draft is empty.
    """
    emitter = emitter or Emitter()
    if not (refined or "").strip():
        raise StageError("Format failed: missing refined draft")

    emitter.log(FORMAT_STEP, "Format engaged. Detecting tabular structures and enforcing Markdown compliance.")
    out = re.sub(r"\n{3,}", "\n\n", refined).strip()

    if wants_table(query, accepted):
        emitter.log(FORMAT_STEP, "Tabular signal detected. Converting top facts into a Markdown table.")
        logger.debug("Appending fact matrix with %d rows", min(len(accepted), TABLE_ROWS))
        out = "\n".join([out, "", "## Fact Matrix", to_markdown_table(accepted[:TABLE_ROWS])])

    return out
