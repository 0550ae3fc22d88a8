from typing import Callable

from app.ai.config import load_ai_config
from app.ai.types import AIClient

from app.ai.providers.openai_provider import OpenAIProvider
from app.ai.providers.gemini_provider import GeminiProvider

# Both providers accept the resume inline, so no upload step is needed.
_PROVIDERS: dict[str, Callable[..., AIClient]] = {
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
}


def supported_providers() -> tuple[str, ...]:
    return tuple(sorted(_PROVIDERS))


def get_ai_client() -> AIClient:
    cfg = load_ai_config()
    provider_cls = _PROVIDERS.get(cfg.provider)
    if provider_cls is None:
        raise ValueError(
            f"Unsupported AI_PROVIDER='{cfg.provider}'. Expected one of: {', '.join(supported_providers())}"
        )
    return provider_cls(model=cfg.model)
