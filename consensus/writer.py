"""Final write: one model call turns the whole run context into the report."""

import json
import logging

from config.config_loader import StageModelConfig
from consensus.dispatcher import call_agent
from consensus.events import Emitter
from consensus.models import ChatRequest, FinalReport, PipelineContext
from consensus.providers.base import ChatProvider, ProviderError
from consensus.redact import redact_secrets
from consensus.text import extract_json_object, normalize_snippet

logger = logging.getLogger(__name__)

STEP = 10

KEY_FACTS = 10
EMPTY_FALLBACK = "Error generating final report. Using formatted draft."


def build_context_bundle(ctx: PipelineContext) -> dict:
    """Serialisable view of the run handed to the writer model."""
    swarm = ctx.swarm.successful if ctx.swarm else ()
    facts = ctx.facts or ()
    logic = ctx.logic
    guard = ctx.guard
    safe_output = guard.safe_output if guard else ""

    return {
        "userQuery": ctx.query,
        "swarmResults": [
            {"agent": e.agent_id, "model": e.model_used, "summary": normalize_snippet(e.content, 600)}
            for e in swarm
        ],
        "keyFacts": [
            {
                "fact": f.text,
                "confidence": round(f.confidence, 3),
                "agent": f.source_agent,
                "model": f.source_model,
                "agreeingAgents": sorted(f.agreeing_agents),
            }
            for f in facts[:KEY_FACTS]
        ],
        "logicConflicts": [
            {"topic": c.topic, "a": c.a, "b": c.b, "tieBreaker": c.tie_breaker}
            for c in (logic.conflicts if logic else ())
        ],
        "critiqueAttacks": [
            {"counter": a.counter, "targetFact": a.target_fact, "supportScore": a.support_score}
            for a in (ctx.critique.attacks if ctx.critique else ())
        ],
        "verifiedDraft": ctx.verified or "",
        "guardFlags": [
            {"type": fl.kind, "hits": list(fl.hits), "score": fl.score}
            for fl in (guard.flags if guard else ())
        ],
        "guardSafeOutput": safe_output,
        "formattedDraft": safe_output or ctx.formatted or "",
    }


def parse_report(content: str) -> str:
    parsed = extract_json_object(content)
    if parsed and isinstance(parsed.get("report"), str) and parsed["report"].strip():
        return parsed["report"]
    return content


async def write_report(
    ctx: PipelineContext,
    provider: ChatProvider,
    stage: StageModelConfig,
    system_prompt: str,
    timeout_sec: float,
    emitter: Emitter | None = None,
) -> FinalReport:
    """Ask the writer model for the report; fall back to the guarded draft.

    Never raises on provider failure. The answer is always secret-scrubbed.
    """
    emitter = emitter or Emitter()
    emitter.log(STEP, f"Final write engaged. Spawning writer ({stage.provider}).")

    bundle = build_context_bundle(ctx)
    request = ChatRequest(
        model=stage.model,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": f"Context Data:\n{json.dumps(bundle, indent=2)}"},
        ],
        max_tokens=stage.max_tokens,
        timeout_sec=timeout_sec,
        json_mode=True,
    )

    try:
        content, _ = await call_agent(provider, request)
    except ProviderError as exc:
        logger.error("Final write failed, using guarded draft: %s", exc)
        emitter.log(STEP, "Writer unavailable. Using guarded draft.")
        answer = bundle["formattedDraft"] or EMPTY_FALLBACK
        return FinalReport(answer=redact_secrets(answer), model=None, fallback=True)

    emitter.log(STEP, "Packaging final report.")
    return FinalReport(answer=redact_secrets(parse_report(content)), model=stage.model)
