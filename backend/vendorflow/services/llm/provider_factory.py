from vendorflow.services.llm.base import ChatCompletionVendorParser, VendorParserProvider
from vendorflow.services.llm.cerebras_provider import CerebrasVendorParserProvider
from vendorflow.services.llm.gemini_provider import GeminiVendorParserProvider
from vendorflow.services.llm.mock_provider import MockVendorParserProvider
from vendorflow.services.llm.openai_provider import OpenAIVendorParserProvider
from vendorflow.services.llm.settings_service import (
    LLMProvider,
    LLMRuntimeConfig,
    get_env_runtime_config,
)

HOSTED_PROVIDERS: dict[LLMProvider, type[ChatCompletionVendorParser]] = {
    LLMProvider.OPENAI: OpenAIVendorParserProvider,
    LLMProvider.GEMINI: GeminiVendorParserProvider,
    LLMProvider.CEREBRAS: CerebrasVendorParserProvider,
}


class ProviderNotConfiguredError(RuntimeError):
    """Raised when a hosted provider is selected without its API key."""


def get_vendor_parser_provider(runtime: LLMRuntimeConfig | None = None) -> VendorParserProvider:
    runtime = runtime or get_env_runtime_config()
    if runtime.provider == LLMProvider.MOCK:
        return MockVendorParserProvider()

    provider_class = HOSTED_PROVIDERS.get(runtime.provider)
    if provider_class is None:
        raise ProviderNotConfiguredError(f"Unsupported LLM provider '{runtime.provider}'.")
    if not runtime.api_key:
        raise ProviderNotConfiguredError(
            f"{runtime.provider.value} API key is missing. Set {runtime.api_key_env_var} in backend .env."
        )
    return provider_class(
        api_key=runtime.api_key,
        model=runtime.model,
        timeout_seconds=runtime.timeout_seconds,
    )
