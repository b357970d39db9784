"""OpenAI-compatible chat provider using the openai SDK with native async."""

import asyncio
import logging
import os
import time
from collections.abc import Iterable

from openai import AsyncOpenAI

from config.config_loader import AppConfig, ProviderConfig
from consensus.errors import ConfigurationError
from consensus.models import ChatCompletion, ChatRequest
from consensus.providers.base import ChatProvider, ProviderError

logger = logging.getLogger(__name__)

_PLACEHOLDER_KEYS = {"PLACEHOLDER_KEY_HERE", "PASTE_YOUR_KEY_HERE"}


def read_api_key(config: ProviderConfig) -> str:
    """Return the provider's API key or raise ConfigurationError."""
    api_key = os.environ.get(config.api_key_env, "").strip()
    if not api_key or api_key in _PLACEHOLDER_KEYS:
        raise ConfigurationError(f"{config.api_key_env} missing in environment (.env) for provider '{config.name}'")
    return api_key


class OpenAICompatibleProvider(ChatProvider):
    """Any chat endpoint speaking the OpenAI wire format (Blackbox, Cerebras, ...)."""

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self._client = AsyncOpenAI(api_key=read_api_key(config), base_url=config.base_url)

    def name(self) -> str:
        return self._config.name

    async def complete(self, request: ChatRequest) -> ChatCompletion:
        kwargs: dict = {
            "model": request.model,
            "messages": request.messages,
            "max_tokens": request.max_tokens,
            "timeout": request.timeout_sec,
        }
        if request.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs),
                timeout=request.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {request.timeout_sec:g}s") from exc
        except Exception as exc:
            status = getattr(exc, "status_code", None)
            raise ProviderError(
                self._config.name,
                f"API call failed: {exc}",
                status=status if isinstance(status, int) else None,
            ) from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.total_tokens

        logger.info(
            "%s %s: %.2fs, %s tokens",
            self._config.name,
            request.model,
            latency,
            token_count,
        )

        return ChatCompletion(
            content=choice.message.content,
            model=request.model,
            completion_id=getattr(response, "id", None),
            latency_sec=latency,
            token_count=token_count,
        )


def build_providers(config: AppConfig, names: Iterable[str]) -> dict[str, ChatProvider]:
    """Instantiate one provider per name.

    Raises:
        ConfigurationError: If a name is not configured or its key is absent.
    """
    providers: dict[str, ChatProvider] = {}
    for name in sorted(set(names)):
        if name not in config.providers:
            raise ConfigurationError(f"Provider '{name}' is not configured in settings.yaml")
        providers[name] = OpenAICompatibleProvider(config.providers[name])
    return providers
