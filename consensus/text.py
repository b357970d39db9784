"""Text normalisation helpers shared by the stages."""

import json
import re

_EMPHASIS = re.compile(r"[`*_#>]")
_NON_WORD = re.compile(r"[^a-z0-9\s]")
_SPACES = re.compile(r"[ ]{2,}")


def normalize_text(text: str | None) -> str:
    """Unify line endings, turn tabs into spaces, collapse runs of spaces, trim."""
    out = str(text or "").replace("\r\n", "\n").replace("\t", " ")
    return _SPACES.sub(" ", out).strip()


def normalize_key(text: str | None) -> str:
    """Lower-case, markdown- and punctuation-free form used for keys."""
    out = _EMPHASIS.sub(" ", str(text or "").lower())
    out = _NON_WORD.sub(" ", out)
    return _SPACES.sub(" ", out).strip()


def tokenize_words(text: str | None) -> list[str]:
    """Lower-cased words of length >= 3, markdown and punctuation stripped."""
    out = _EMPHASIS.sub(" ", normalize_text(text).lower())
    out = _NON_WORD.sub(" ", out)
    return [w for w in out.split() if len(w) >= 3]


def normalize_snippet(text: str | None, limit: int = 220) -> str:
    out = str(text or "").replace("\r\n", "\n")
    out = re.sub(r"[\t ]{2,}", " ", out)
    out = re.sub(r"\n{3,}", "\n\n", out).strip()
    if len(out) <= limit:
        return out
    return out[:limit].rstrip() + "…"


def normalize_whitespace(text: str | None) -> str:
    out = _SPACES.sub(" ", str(text or ""))
    return re.sub(r"\n{3,}", "\n\n", out).strip()


def extract_json_object(text: str | None) -> dict | None:
    """Parse a JSON object, tolerating prose around the outermost braces."""
    raw = str(text or "").strip()
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        start = raw.find("{")
        end = raw.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            parsed = json.loads(raw[start : end + 1])
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None
