"""Secret scrubbing for every string that leaves the pipeline."""

import re

REDACTED = "[REDACTED]"

_KEY_PREFIX = r"(?:bb_|c?sk-)"

_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    # prefixed keys not glued to a preceding letter
    (re.compile(rf"(?<![A-Za-z]){_KEY_PREFIX}[A-Za-z0-9_-]{{10,}}"), REDACTED),
    # prefixed keys anywhere, as long as the body carries a digit ("risk-adjusted-returns" stays)
    (re.compile(rf"{_KEY_PREFIX}(?=[A-Za-z_-]*\d)[A-Za-z0-9_-]{{10,}}"), REDACTED),
    (re.compile(r"Bearer\s+[A-Za-z0-9._-]{20,}", re.IGNORECASE), f"Bearer {REDACTED}"),
    (re.compile(r"\b([A-Z][A-Z0-9_]*_API_KEY)\s*=\s*[^\s,;]+"), rf"\1={REDACTED}"),
    (re.compile(r"(api[_-]?key)[\"']?\s*[:=]\s*[\"']?[A-Za-z0-9_-]{20,}[\"']?", re.IGNORECASE), rf"\1={REDACTED}"),
    (re.compile(r"Received API Key\s*=\s*[^,]+", re.IGNORECASE), f"Received API Key = {REDACTED}"),
)


def redact_secrets(text: str | None) -> str:
    """Replace provider-key-shaped substrings with ``[REDACTED]``."""
    if not text:
        return ""
    out = str(text)
    for pattern, replacement in _PATTERNS:
        out = pattern.sub(replacement, out)
    return out
