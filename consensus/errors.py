"""Pipeline error taxonomy. Every message is secret-scrubbed on construction."""

from consensus.redact import redact_secrets


class PipelineError(RuntimeError):
    """Base class for errors surfaced to the caller of run_pipeline."""

    def __init__(self, message: str) -> None:
        super().__init__(redact_secrets(message))


class ConfigurationError(PipelineError):
    """Missing query, unknown mode or missing credentials. Never retried."""


class SwarmFailureError(PipelineError):
    """No agent in the roster produced usable content."""


class StageError(PipelineError):
    """A stage had nothing usable to work with."""


class ExtractionError(StageError):
    """No executions to deconstruct, or no facts could be derived."""


class SynthesisError(StageError):
    """No accepted facts reached synthesis."""
