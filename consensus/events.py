"""Progress events and the injected sink they are pushed to.

Events are a side channel: stages push them through an ``Emitter`` and never
read them back. The emitter scrubs every string before it reaches the sink,
because sinks are typically wired straight to a client.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import ClassVar

from consensus.redact import redact_secrets

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ProgressEvent:
    type: ClassVar[str] = "event"

    step: int
    at: int = field(default_factory=_now_ms, kw_only=True)

    def to_dict(self) -> dict[str, object]:
        return {"type": self.type, "step": self.step, "at": self.at}


@dataclass(frozen=True)
class StepProgress(ProgressEvent):
    type: ClassVar[str] = "step_progress"

    percent: int = 0

    def to_dict(self) -> dict[str, object]:
        return {**super().to_dict(), "percent": self.percent}


@dataclass(frozen=True)
class LogEvent(ProgressEvent):
    type: ClassVar[str] = "log"

    message: str = ""

    def to_dict(self) -> dict[str, object]:
        return {**super().to_dict(), "message": self.message}


@dataclass(frozen=True)
class AgentStart(ProgressEvent):
    type: ClassVar[str] = "agent_start"

    agent: str = ""
    agent_name: str = ""
    model: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            **super().to_dict(),
            "agent": self.agent,
            "agentName": self.agent_name,
            "model": self.model,
        }


@dataclass(frozen=True)
class AgentFinish(ProgressEvent):
    type: ClassVar[str] = "agent_finish"

    agent: str = ""
    agent_name: str = ""
    model: str = ""
    status: str = ""
    duration: str = ""
    duration_ms: int = 0
    output_snippet: str = ""
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            **super().to_dict(),
            "agent": self.agent,
            "agentName": self.agent_name,
            "model": self.model,
            "status": self.status,
            "duration": self.duration,
            "durationMs": self.duration_ms,
            "output_snippet": self.output_snippet,
            "error": self.error,
        }


EventSink = Callable[[ProgressEvent], None]


class CollectingSink:
    """Sink that keeps every event in order."""

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []

    def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type[ProgressEvent]) -> list[ProgressEvent]:
        return [e for e in self.events if isinstance(e, event_type)]


class Emitter:
    """Builds, scrubs and pushes events to an optional sink."""

    def __init__(self, sink: EventSink | None = None) -> None:
        self._sink = sink

    def _push(self, event: ProgressEvent) -> None:
        if self._sink is None:
            return
        try:
            self._sink(event)
        except Exception as exc:
            # sink failures never abort a run
            logger.warning("Event sink rejected %s event: %s", event.type, redact_secrets(str(exc)))

    def progress(self, step: int, percent: int) -> None:
        self._push(StepProgress(step=step, percent=max(0, min(100, int(percent)))))

    def log(self, step: int, message: str) -> None:
        self._push(LogEvent(step=step, message=redact_secrets(message)))

    def agent_start(self, step: int, agent: str, agent_name: str, model: str) -> None:
        self._push(AgentStart(step=step, agent=agent, agent_name=agent_name, model=model))

    def agent_finish(
        self,
        step: int,
        agent: str,
        agent_name: str,
        model: str,
        status: str,
        duration_ms: int,
        output_snippet: str = "",
        error: str | None = None,
    ) -> None:
        self._push(
            AgentFinish(
                step=step,
                agent=agent,
                agent_name=agent_name,
                model=model,
                status=status,
                duration=f"{max(0, duration_ms) / 1000:.1f}s",
                duration_ms=duration_ms,
                output_snippet=redact_secrets(output_snippet),
                error=redact_secrets(error) if error else None,
            )
        )
