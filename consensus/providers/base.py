"""Abstract base for OpenAI-compatible chat providers."""

from abc import ABC, abstractmethod

from consensus.models import ChatCompletion, ChatRequest
from consensus.redact import redact_secrets


class ProviderError(Exception):
    """Raised when a provider call fails.

    ``status`` carries the HTTP status when the endpoint returned one.
    """

    def __init__(self, provider_name: str, message: str, status: int | None = None) -> None:
        self.provider_name = provider_name
        self.status = status
        super().__init__(f"[{provider_name}] {redact_secrets(message)}")


class ChatProvider(ABC):
    """One chat-completion endpoint, addressed by model id per request."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'blackbox', 'cerebras')."""
        ...

    @abstractmethod
    async def complete(self, request: ChatRequest) -> ChatCompletion:
        """Send one chat-completion request.

        Args:
            request: Model, messages, token budget and timeout for the call.

        Returns:
            ChatCompletion with the text of ``choices[0].message.content``.

        Raises:
            ProviderError: On API failure, timeout, or empty response.
        """
        ...
