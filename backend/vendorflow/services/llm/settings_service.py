"""Language backend selection, read from the server environment.

Provider choice and keys are deployment settings; the API only reports
them and never stores a key.
"""

from dataclasses import dataclass
from enum import Enum

from vendorflow.core.config import get_settings

settings = get_settings()


class LLMProvider(str, Enum):
    MOCK = "mock"
    OPENAI = "openai"
    GEMINI = "gemini"
    CEREBRAS = "cerebras"


# provider -> (model setting, api key setting, env var that holds the key)
PROVIDER_SETTINGS: dict[LLMProvider, tuple[str, str | None, str | None]] = {
    LLMProvider.MOCK: ("llm_model", None, None),
    LLMProvider.OPENAI: ("openai_model", "openai_api_key", "OPENAI_API_KEY"),
    LLMProvider.GEMINI: ("gemini_model", "gemini_api_key", "GEMINI_API_KEY"),
    LLMProvider.CEREBRAS: ("cerebras_model", "cerebras_api_key", "CEREBRAS_API_KEY"),
}


@dataclass(frozen=True)
class LLMRuntimeConfig:
    provider: LLMProvider
    model: str
    timezone: str
    timeout_seconds: float
    api_key: str | None = None

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    @property
    def api_key_env_var(self) -> str | None:
        return PROVIDER_SETTINGS[self.provider][2]


def _provider_from_env() -> LLMProvider:
    try:
        return LLMProvider(settings.llm_provider.lower().strip())
    except ValueError:
        return LLMProvider.MOCK


def get_env_runtime_config() -> LLMRuntimeConfig:
    provider = _provider_from_env()
    model_attr, key_attr, _ = PROVIDER_SETTINGS[provider]
    model = (getattr(settings, model_attr) or "").strip() or settings.llm_model
    api_key = getattr(settings, key_attr) if key_attr else None
    return LLMRuntimeConfig(
        provider=provider,
        model=model,
        timezone=settings.llm_timezone.strip() or "UTC",
        timeout_seconds=settings.llm_timeout_seconds,
        api_key=api_key.strip() if api_key else None,
    )
