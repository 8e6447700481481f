"""
Provider registry for commit-message generation.

This module provides the central registry for all AI providers and the
default fallback order (local before metered cloud).
"""

import logging
from typing import Optional, List, Type, TYPE_CHECKING

from .base import AIProvider, GenerationOptions, classify_http_error
from .chat_completions import ChatCompletionsProvider
from .groq import GroqProvider
from .ollama import OllamaProvider
from .openrouter import OpenRouterProvider

if TYPE_CHECKING:
    from ..config import UserConfig


logger = logging.getLogger(__name__)


# Registry of available providers
_PROVIDERS: dict[str, Type[AIProvider]] = {
    "ollama": OllamaProvider,
    "groq": GroqProvider,
    "openrouter": OpenRouterProvider,
}

DEFAULT_PROVIDER_ORDER = ["ollama", "groq", "openrouter"]

_COMMON_KWARGS = {"model", "timeout", "max_retries", "retry_delay", "client"}


def list_providers() -> List[str]:
    """
    List all registered provider names.

    Returns:
        List[str]: List of provider names
    """
    return list(_PROVIDERS.keys())


def get_provider(name: str, **kwargs) -> AIProvider:
    """
    Get a provider instance by name.

    Args:
        name: Provider name
        **kwargs: Constructor arguments; unsupported ones are dropped

    Returns:
        AIProvider: An initialized provider instance

    Raises:
        ValueError: If the provider name is not registered
    """
    if name not in _PROVIDERS:
        available = ", ".join(list_providers())
        raise ValueError(f"Unknown provider '{name}'. Available: {available}")

    provider_class = _PROVIDERS[name]
    provider = provider_class(**_filter_kwargs_for_provider(provider_class, kwargs))

    if not provider.is_available():
        logger.debug(f"Provider '{name}' is not available (missing configuration)")

    return provider


def _filter_kwargs_for_provider(provider_class: Type[AIProvider], kwargs: dict) -> dict:
    """
    Filter kwargs to only include those accepted by the provider.

    Args:
        provider_class: Provider class being constructed
        kwargs: All kwargs passed to get_provider

    Returns:
        dict: Filtered kwargs for the specific provider
    """
    accepted = set(_COMMON_KWARGS)
    if issubclass(provider_class, OllamaProvider):
        accepted.add("base_url")
    if issubclass(provider_class, ChatCompletionsProvider):
        accepted.add("api_key")
    return {k: v for k, v in kwargs.items() if k in accepted and v is not None}


def register_provider(name: str, provider_class: Type[AIProvider]) -> None:
    """
    Register a new provider class.

    Args:
        name: Provider name for registry
        provider_class: Provider class (must inherit from AIProvider)
    """
    if not isinstance(provider_class, type) or not issubclass(provider_class, AIProvider):
        raise TypeError("Provider class must inherit from AIProvider")

    _PROVIDERS[name] = provider_class
    logger.info(f"Registered provider: {name}")


def get_available_providers() -> List[str]:
    """
    Get list of currently available providers.

    Returns:
        List[str]: Names of available providers in default priority order.
    """
    ordered = DEFAULT_PROVIDER_ORDER + [n for n in _PROVIDERS if n not in DEFAULT_PROVIDER_ORDER]
    return [name for name in ordered if name in _PROVIDERS and get_provider(name).is_available()]


def build_providers(config: Optional["UserConfig"] = None) -> dict[str, AIProvider]:
    """
    Instantiate every provider named in the configured order.

    Unknown names are logged and skipped.

    Args:
        config: User configuration (provider order and per-provider settings)

    Returns:
        dict: Provider name -> instance, in configured order
    """
    order = config.provider_order if config is not None else DEFAULT_PROVIDER_ORDER
    providers: dict[str, AIProvider] = {}
    for name in order:
        settings = config.provider_settings(name) if config is not None else {}
        try:
            providers[name] = get_provider(name, **settings)
        except ValueError as e:
            logger.warning(str(e))
    return providers


# Export public API
__all__ = [
    "AIProvider",
    "GenerationOptions",
    "ChatCompletionsProvider",
    "OllamaProvider",
    "GroqProvider",
    "OpenRouterProvider",
    "DEFAULT_PROVIDER_ORDER",
    "classify_http_error",
    "get_provider",
    "list_providers",
    "register_provider",
    "get_available_providers",
    "build_providers",
]
