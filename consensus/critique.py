"""Red-team critique: one model call that attacks the accepted facts.

Never fatal. A provider failure degrades to a single heuristic attack, and a
reply that is not the expected JSON becomes one attack carrying the raw text.
"""

import logging
from collections.abc import Sequence

from config.config_loader import StageModelConfig
from consensus.dispatcher import call_agent
from consensus.events import Emitter
from consensus.models import Attack, ChatRequest, CritiqueResult, Fact
from consensus.providers.base import ChatProvider, ProviderError
from consensus.scoring import clamp01
from consensus.text import extract_json_object

logger = logging.getLogger(__name__)

STEP = 4

MAX_CRITIQUED_FACTS = 36
DEFAULT_SUPPORT = 0.55

NO_FACTS_ATTACK = "No facts to critique."
FALLBACK_ATTACK = "API Error: defaulting to heuristic critique."


def normalize_attacks(items: object) -> list[Attack]:
    """Coerce a loosely-typed ``attacks`` list into Attack records.

    Strings become attacks with default support; dicts are read for
    ``counter``, ``targetFact`` and ``supportScore``. Items without a
    counter are dropped.
    """
    if not isinstance(items, list):
        return []

    out: list[Attack] = []
    for item in items:
        if isinstance(item, str):
            counter = item.strip()
            if counter:
                out.append(Attack(counter=counter, target_fact="", support_score=DEFAULT_SUPPORT))
        elif isinstance(item, dict):
            counter = item.get("counter")
            counter = counter.strip() if isinstance(counter, str) else ""
            if not counter:
                continue
            target = item.get("targetFact")
            support = item.get("supportScore")
            if isinstance(support, bool) or not isinstance(support, (int, float)):
                support = DEFAULT_SUPPORT
            out.append(
                Attack(
                    counter=counter,
                    target_fact=target.strip() if isinstance(target, str) else "",
                    support_score=clamp01(float(support)),
                )
            )
    return out


def parse_attacks(content: str) -> list[Attack]:
    parsed = extract_json_object(content)
    attacks = normalize_attacks(parsed.get("attacks")) if parsed else []
    return attacks or normalize_attacks([content])


def format_facts(facts: Sequence[Fact]) -> str:
    return "\n".join(f"{i}. {f.text}" for i, f in enumerate(facts[:MAX_CRITIQUED_FACTS], start=1))


async def critique(
    accepted: Sequence[Fact],
    provider: ChatProvider,
    stage: StageModelConfig,
    system_prompt: str,
    timeout_sec: float,
    emitter: Emitter | None = None,
) -> CritiqueResult:
    emitter = emitter or Emitter()
    emitter.log(STEP, "Critique engaged. Spawning red team analysis.")

    if not accepted:
        return CritiqueResult(attacks=tuple(normalize_attacks([NO_FACTS_ATTACK])))

    request = ChatRequest(
        model=stage.model,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": f"Facts:\n{format_facts(accepted)}"},
        ],
        max_tokens=stage.max_tokens,
        timeout_sec=timeout_sec,
        json_mode=True,
    )

    try:
        content, _ = await call_agent(provider, request)
    except ProviderError as exc:
        logger.error("Critique call failed: %s", exc)
        emitter.log(STEP, "Critique fallback: using heuristic analysis due to API error.")
        return CritiqueResult(
            attacks=tuple(normalize_attacks([FALLBACK_ATTACK])),
            model=stage.model,
            fallback=True,
        )

    attacks = parse_attacks(content)
    emitter.log(STEP, f"Critique complete. Generated {len(attacks)} adversarial vectors.")
    return CritiqueResult(attacks=tuple(attacks), model=stage.model)
