"""Dataclasses for the consensus pipeline. No logic beyond small views, no deps."""

import dataclasses
from dataclasses import dataclass, field

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class AgentDescriptor:
    id: str                # role key, e.g. "reasoner"
    display_name: str
    primary_model: str
    fallback_models: tuple[str, ...] = ()
    provider: str = "blackbox"


@dataclass(frozen=True)
class ChatRequest:
    model: str
    messages: list[dict[str, str]]
    max_tokens: int
    timeout_sec: float
    json_mode: bool = False


@dataclass(frozen=True)
class ChatCompletion:
    content: str
    model: str
    completion_id: str | None
    latency_sec: float
    token_count: int | None = None


@dataclass(frozen=True)
class AgentExecution:
    agent_id: str
    agent_name: str
    model_used: str
    status: str            # "completed" or "failed"
    content: str
    error: str | None
    duration_ms: int
    completion_id: str | None = None
    error_type: str | None = None  # see dispatcher.classify_error

    @property
    def ok(self) -> bool:
        return self.status == STATUS_COMPLETED


@dataclass(frozen=True)
class SwarmResult:
    mode: str
    executions: tuple[AgentExecution, ...]

    @property
    def successful(self) -> tuple[AgentExecution, ...]:
        return tuple(e for e in self.executions if e.ok)


@dataclass(frozen=True)
class Fact:
    text: str
    tokens: frozenset[str]
    token_count: int
    confidence: float
    agreeing_agents: frozenset[str]
    source_agent: str
    source_model: str

    @property
    def agreeing_agent_count(self) -> int:
        return len(self.agreeing_agents)


@dataclass(frozen=True)
class ScoredFact:
    fact: Fact
    specialty_weight: float
    composite_score: float


@dataclass(frozen=True)
class Conflict:
    topic: str
    a: str
    b: str
    tie_breaker: str


@dataclass(frozen=True)
class RejectedFact:
    fact: Fact
    reason: str
    conflicts_with: str | None = None


@dataclass(frozen=True)
class LogicResult:
    accepted: tuple[Fact, ...]
    rejected: tuple[RejectedFact, ...]
    conflicts: tuple[Conflict, ...]


@dataclass(frozen=True)
class Attack:
    counter: str
    target_fact: str
    support_score: float


@dataclass(frozen=True)
class CritiqueResult:
    attacks: tuple[Attack, ...]
    model: str | None = None
    fallback: bool = False


@dataclass(frozen=True)
class VerifiedFact:
    text: str
    confidence: float
    truth_score: float
    final_score: float
    hits: tuple[str, ...]
    source_agent: str
    source_model: str


@dataclass(frozen=True)
class GuardFlag:
    kind: str
    hits: tuple[str, ...] = ()
    score: float | None = None


@dataclass(frozen=True)
class GuardResult:
    safe_output: str
    flags: tuple[GuardFlag, ...]
    risk: float


@dataclass(frozen=True)
class FinalReport:
    answer: str
    model: str | None
    fallback: bool = False


@dataclass(frozen=True)
class PipelineContext:
    """Accumulator threaded through the stages.

    Each stage reads fields written by earlier stages and adds exactly one
    new field through ``extend``. Populated fields are never overwritten.
    """

    query: str
    mode: str
    swarm: SwarmResult | None = None
    facts: tuple[Fact, ...] | None = None
    logic: LogicResult | None = None
    critique: CritiqueResult | None = None
    draft: str | None = None
    verified: str | None = None
    refined: str | None = None
    formatted: str | None = None
    guard: GuardResult | None = None
    report: FinalReport | None = None

    def extend(self, **fields: object) -> "PipelineContext":
        for name in fields:
            if name in ("query", "mode"):
                raise ValueError(f"Context field {name!r} is fixed for the run")
            if getattr(self, name) is not None:
                raise ValueError(f"Context field {name!r} is already set")
        return dataclasses.replace(self, **fields)


@dataclass
class PipelineResult:
    query: str
    mode: str
    answer: str
    started_at: float
    finished_at: float
    context: PipelineContext = field(repr=False)

    @property
    def duration_sec(self) -> float:
        return self.finished_at - self.started_at
