"""Final guard: keyword and hallucination heuristics plus secret scrubbing."""

import logging
import re

from consensus.errors import StageError
from consensus.events import Emitter
from consensus.models import GuardFlag, GuardResult
from consensus.redact import redact_secrets
from consensus.scoring import clamp01

logger = logging.getLogger(__name__)

STEP = 9

RISK_THRESHOLD = 0.55

PROFANITY_WORDS = ("fuck", "shit", "bitch", "asshole")
BIAS_WORDS = ("race", "religion", "ethnicity", "gender", "nationality")

_HEDGES = re.compile(r"\b(maybe|might|could|possibly|seems|likely)\b", re.IGNORECASE)
_ABSOLUTES = re.compile(r"\b(always|never|guarantee)\b|100%", re.IGNORECASE)
_NUMBERS = re.compile(r"\b\d{2,}\b")
_REFERENCES = re.compile(r"\b(file|path|endpoint|http://localhost|npm run|package\.json)\b", re.IGNORECASE)


def keyword_hits(text: str, words: tuple[str, ...]) -> list[str]:
    lowered = (text or "").lower()
    return [w for w in words if w in lowered]


def hallucination_risk(text: str) -> float:
    """Hedges, absolutes and bare numbers raise risk; concrete references lower it."""
    text = text or ""
    hedges = len(_HEDGES.findall(text))
    absolutes = len(_ABSOLUTES.findall(text))
    numbers = len(_NUMBERS.findall(text))
    refs = len(_REFERENCES.findall(text))
    raw = 0.35 * (hedges / 8) + 0.25 * (absolutes / 6) + 0.25 * (numbers / 10) - 0.25 * (refs / 10)
    return clamp01(raw)


def guard(formatted: str, emitter: Emitter | None = None) -> GuardResult:
    emitter = emitter or Emitter()
    if not (formatted or "").strip():
        raise StageError("Guard failed: missing formatted output")

    emitter.log(STEP, "Final guard engaged. Running profanity, bias and hallucination heuristics.")

    flags: list[GuardFlag] = []
    profanity = keyword_hits(formatted, PROFANITY_WORDS)
    if profanity:
        flags.append(GuardFlag(kind="profanity", hits=tuple(profanity)))

    bias = keyword_hits(formatted, BIAS_WORDS)
    if bias:
        flags.append(GuardFlag(kind="bias_keywords", hits=tuple(bias)))

    risk = hallucination_risk(formatted)
    if risk >= RISK_THRESHOLD:
        flags.append(GuardFlag(kind="hallucination_risk", score=risk))

    if flags:
        logger.warning("Guard raised %d flag(s): %s", len(flags), ", ".join(f.kind for f in flags))
    emitter.log(STEP, f"Guard analysis complete. Risk {risk:.2f}. Flags {len(flags)}.")

    return GuardResult(safe_output=redact_secrets(formatted), flags=tuple(flags), risk=risk)
