"""Chat model factory for architecture analysis.

Provider routing is done via model name prefix:
  - "ollama:<model>"  → local Ollama  (e.g. "ollama:qwen2.5-coder:14b")
  - "claude-*"        → Anthropic API
  - anything else     → OpenAI API   (e.g. "gpt-4o", "gpt-4o-mini")

Set ANALYSIS_MODEL in .env to choose.
"""

from __future__ import annotations

from langchain_core.language_models import BaseChatModel

from planview.core.config import Settings, get_settings
from planview.core.logging import get_logger

logger = get_logger("agents.models")

_OLLAMA_PREFIX = "ollama:"


def is_ollama_model(model_name: str) -> bool:
    return model_name.lower().startswith(_OLLAMA_PREFIX)


def is_anthropic_model(model_name: str) -> bool:
    return "claude" in model_name.lower()


def _require_key(env_name: str, model: str, api_key: str | None) -> str:
    key = (api_key or "").strip()
    if key:
        return key
    raise ValueError(
        f"Missing {env_name} for analysis model '{model}'. "
        f"Set {env_name} in .env or choose a model from another provider."
    )


def build_chat_model(
    model: str,
    *,
    openai_api_key: str = "",
    anthropic_api_key: str = "",
    ollama_base_url: str = "http://localhost:11434",
    temperature: float = 0.1,
    max_tokens: int = 3000,
) -> BaseChatModel:
    """Build a chat model for any supported provider based on the model string.

    Raises ``ValueError`` when the provider's API key is missing and
    ``ImportError`` when langchain-ollama is needed but not installed.
    """
    if is_ollama_model(model):
        try:
            from langchain_ollama import ChatOllama  # type: ignore[import-untyped]
        except ImportError as exc:
            raise ImportError(
                "langchain-ollama is not installed. Run: pip install 'planview[ollama]'"
            ) from exc
        bare = model[len(_OLLAMA_PREFIX):]
        logger.info("Using Ollama model '%s' at %s", bare, ollama_base_url)
        return ChatOllama(model=bare, base_url=ollama_base_url, temperature=temperature, num_predict=max_tokens)

    if is_anthropic_model(model):
        from langchain_anthropic import ChatAnthropic

        key = _require_key("ANTHROPIC_API_KEY", model, anthropic_api_key)
        logger.info("Using Anthropic model '%s'", model)
        return ChatAnthropic(model=model, api_key=key, temperature=temperature, max_tokens=max_tokens)

    from langchain_openai import ChatOpenAI

    key = _require_key("OPENAI_API_KEY", model, openai_api_key)
    logger.info("Using OpenAI model '%s'", model)
    return ChatOpenAI(model=model, api_key=key, temperature=temperature, max_tokens=max_tokens)


def get_analysis_llm(settings: Settings | None = None) -> BaseChatModel:
    """Chat model configured by ``ANALYSIS_MODEL`` and friends."""
    settings = settings or get_settings()
    return build_chat_model(
        settings.analysis_model,
        openai_api_key=settings.openai_api_key,
        anthropic_api_key=settings.anthropic_api_key,
        ollama_base_url=settings.ollama_base_url,
        temperature=settings.analysis_temperature,
        max_tokens=settings.analysis_max_tokens,
    )
