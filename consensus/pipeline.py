"""Ten-stage consensus pipeline: swarm, deconstruct, logic, critique, synthesis,
verify, refine, format, guard and final write, run strictly in sequence."""

import logging
import time
from collections.abc import Mapping

from config.config_loader import AppConfig, ModeConfig, load_config
from consensus.critique import critique
from consensus.dispatcher import run_swarm, validate_query
from consensus.errors import ConfigurationError, PipelineError, StageError
from consensus.events import Emitter, EventSink
from consensus.extraction import extract_facts
from consensus.guard import guard
from consensus.logic import resolve
from consensus.models import PipelineContext, PipelineResult
from consensus.providers.base import ChatProvider
from consensus.providers.openai_compat import build_providers
from consensus.redact import redact_secrets
from consensus.refine import format_output, refine
from consensus.roster import get_roster, resolve_mode
from consensus.synthesis import synthesize
from consensus.verify import verify
from consensus.writer import write_report

logger = logging.getLogger(__name__)

# (step, label, context field written)
STAGES: tuple[tuple[int, str, str], ...] = (
    (1, "Swarm gathering", "swarm"),
    (2, "Deconstruct", "facts"),
    (3, "Logic", "logic"),
    (4, "Critique", "critique"),
    (5, "Synthesis", "draft"),
    (6, "Verify", "verified"),
    (7, "Refine", "refined"),
    (8, "Format", "formatted"),
    (9, "Guard", "guard"),
    (10, "Final write", "report"),
)


class _StageRunner:
    """One coroutine per context field; each reads earlier fields only."""

    def __init__(
        self,
        config: AppConfig,
        mode_config: ModeConfig,
        providers: Mapping[str, ChatProvider],
        emitter: Emitter,
    ) -> None:
        self.config = config
        self.mode_config = mode_config
        self.providers = providers
        self.emitter = emitter

    async def swarm(self, ctx: PipelineContext):
        return await run_swarm(
            ctx.query,
            ctx.mode,
            get_roster(ctx.mode),
            self.providers,
            self.mode_config,
            self.config.prompts.swarm[ctx.mode],
            self.emitter,
        )

    async def facts(self, ctx: PipelineContext):
        return tuple(extract_facts(ctx.swarm.executions, self.emitter))

    async def logic(self, ctx: PipelineContext):
        return resolve(ctx.facts, self.emitter)

    async def critique(self, ctx: PipelineContext):
        stage = self.mode_config.critique
        return await critique(
            ctx.logic.accepted,
            self.providers[stage.provider],
            stage,
            self.config.prompts.critique,
            self.mode_config.timeout_sec,
            self.emitter,
        )

    async def draft(self, ctx: PipelineContext):
        return synthesize(ctx.logic.accepted, ctx.logic.conflicts, ctx.critique.attacks, self.emitter)

    async def verified(self, ctx: PipelineContext):
        return verify(ctx.draft, ctx.logic.accepted, self.emitter)

    async def refined(self, ctx: PipelineContext):
        return refine(ctx.verified, ctx.query, self.emitter)

    async def formatted(self, ctx: PipelineContext):
        return format_output(ctx.refined, ctx.query, ctx.logic.accepted, self.emitter)

    async def guard(self, ctx: PipelineContext):
        return guard(ctx.formatted, self.emitter)

    async def report(self, ctx: PipelineContext):
        stage = self.mode_config.writer
        return await write_report(
            ctx,
            self.providers[stage.provider],
            stage,
            self.config.prompts.writer,
            self.mode_config.timeout_sec,
            self.emitter,
        )


def required_provider_names(mode: str, mode_config: ModeConfig) -> set[str]:
    names = {agent.provider for agent in get_roster(mode)}
    names.add(mode_config.critique.provider)
    names.add(mode_config.writer.provider)
    return names


def mode_config_for(config: AppConfig, mode: str) -> ModeConfig:
    try:
        return config.modes[mode]
    except KeyError:
        raise ConfigurationError(f"Mode '{mode}' is not configured in settings.yaml") from None


async def run_pipeline(
    query: str,
    mode: str = "standard",
    emit: EventSink | None = None,
    *,
    config: AppConfig | None = None,
    providers: Mapping[str, ChatProvider] | None = None,
) -> PipelineResult:
    """Run all ten stages for one query.

    Validation (query, mode, credentials) happens before any event is
    emitted or any provider is called.

    Args:
        query: The user query.
        mode: Mode selector; aliases such as "thinking" are accepted.
        emit: Optional event sink receiving redacted progress events.
        config: Loaded settings; read from settings.yaml when omitted.
        providers: Chat providers keyed by name; built from config when omitted.

    Returns:
        PipelineResult with the final answer and the full stage context.

    Raises:
        PipelineError: ConfigurationError, SwarmFailureError or a StageError
            subclass, always with a secret-scrubbed message.
    """
    query = validate_query(query)
    mode = resolve_mode(mode)
    config = config or load_config()
    mode_config = mode_config_for(config, mode)

    needed = required_provider_names(mode, mode_config)
    if providers is None:
        providers = build_providers(config, needed)
    missing = sorted(needed - set(providers))
    if missing:
        raise ConfigurationError(f"No credentials configured for provider(s): {', '.join(missing)}")

    emitter = Emitter(emit)
    runner = _StageRunner(config, mode_config, providers, emitter)
    ctx = PipelineContext(query=query, mode=mode)
    started_at = time.time()
    logger.info("Pipeline started: mode=%s, %d stages", mode, len(STAGES))

    for step, label, field_name in STAGES:
        emitter.progress(step, 0)
        stage_started = time.monotonic()
        try:
            value = await getattr(runner, field_name)(ctx)
        except PipelineError as exc:
            logger.error("Step %d (%s) failed: %s", step, label, exc)
            emitter.log(step, f"{label} failed: {exc}")
            raise
        except Exception as exc:
            message = redact_secrets(f"{label} failed unexpectedly: {exc}")
            logger.error("Step %d (%s) crashed: %s", step, label, message)
            emitter.log(step, message)
            raise StageError(message) from exc

        ctx = ctx.extend(**{field_name: value})
        logger.debug("Step %d (%s) done in %.2fs", step, label, time.monotonic() - stage_started)
        emitter.progress(step, 100)

    answer = ctx.report.answer if ctx.report and ctx.report.answer else ctx.guard.safe_output
    finished_at = time.time()
    logger.info("Pipeline finished in %.1fs", finished_at - started_at)

    return PipelineResult(
        query=query,
        mode=mode,
        answer=redact_secrets(answer),
        started_at=started_at,
        finished_at=finished_at,
        context=ctx,
    )
