"""Load settings.yaml into typed dataclasses. Records which provider keys are present."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ProviderConfig:
    name: str
    base_url: str
    api_key_env: str


@dataclass
class StageModelConfig:
    provider: str
    model: str
    max_tokens: int


@dataclass
class ModeConfig:
    name: str
    timeout_sec: float
    max_tokens: int
    critique: StageModelConfig
    writer: StageModelConfig


@dataclass
class PromptsConfig:
    swarm: dict[str, str]
    critique: str
    writer: str


@dataclass
class DefaultsConfig:
    mode: str
    output_dir: Path


@dataclass
class InboxConfig:
    dir: Path
    archive_dir: Path


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    inbox: InboxConfig
    providers: dict[str, ProviderConfig]
    modes: dict[str, ModeConfig]
    prompts: PromptsConfig
    available_providers: set[str] = field(default_factory=set)


def _stage_model(raw: dict) -> StageModelConfig:
    return StageModelConfig(
        provider=str(raw["provider"]),
        model=str(raw["model"]),
        max_tokens=int(raw["max_tokens"]),
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Missing API keys are only logged here; the pipeline raises a
    ConfigurationError when a mode actually needs the provider.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        mode=str(defaults_raw["mode"]),
        output_dir=Path(defaults_raw["output_dir"]),
    )

    inbox_raw = raw.get("inbox", {})
    inbox = InboxConfig(
        dir=Path(inbox_raw.get("dir", "./inbox")),
        archive_dir=Path(inbox_raw.get("archive_dir", "./inbox/archive")),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        swarm={k: str(v) for k, v in prompts_raw["swarm"].items()},
        critique=str(prompts_raw["critique"]),
        writer=str(prompts_raw["writer"]),
    )

    modes: dict[str, ModeConfig] = {}
    for mode_name, mode_raw in raw["modes"].items():
        modes[mode_name] = ModeConfig(
            name=mode_name,
            timeout_sec=float(mode_raw["timeout_sec"]),
            max_tokens=int(mode_raw["max_tokens"]),
            critique=_stage_model(mode_raw["critique"]),
            writer=_stage_model(mode_raw["writer"]),
        )

    providers: dict[str, ProviderConfig] = {}
    available_providers: set[str] = set()

    for provider_name, provider_raw in raw["providers"].items():
        providers[provider_name] = ProviderConfig(
            name=provider_name,
            base_url=str(provider_raw["base_url"]),
            api_key_env=str(provider_raw["api_key_env"]),
        )

        api_key = os.environ.get(provider_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s, set %s in .env",
                provider_name,
                provider_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        inbox=inbox,
        providers=providers,
        modes=modes,
        prompts=prompts,
        available_providers=available_providers,
    )
