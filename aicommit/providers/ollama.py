"""
Ollama provider for commit-message generation.

Talks to a local (or self-hosted) Ollama server over its /api/generate
endpoint. No API key is needed, so it is tried before metered cloud
providers in the default order.
"""

import os
import logging
from typing import Optional

import httpx

from ..errors import ProviderError, ProviderErrorKind
from .base import AIProvider, GenerationOptions


logger = logging.getLogger(__name__)

RESOLVE_SYSTEM_PREFIX = (
    "You are an expert software developer who helps resolve merge conflicts "
    "and improve code quality.\n\n"
)


class OllamaProvider(AIProvider):
    """Provider backed by a local Ollama server."""

    DEFAULT_BASE_URL = "http://localhost:11434"
    DEFAULT_MODEL = "llama3.2"
    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the Ollama provider.

        Args:
            base_url: Server URL (defaults to OLLAMA_HOST or localhost:11434)
            model: Model name (defaults to OLLAMA_MODEL or llama3.2)
            timeout: Request timeout in seconds
            max_retries: Attempts for retryable failures
            retry_delay: Base backoff delay in seconds
            client: Shared AsyncClient
        """
        super().__init__(timeout, max_retries, retry_delay, client)
        self._base_url = (base_url or os.environ.get("OLLAMA_HOST") or self.DEFAULT_BASE_URL).rstrip("/")
        self._model = model or os.environ.get("OLLAMA_MODEL", self.DEFAULT_MODEL)

    def name(self) -> str:
        return "ollama"

    def is_available(self) -> bool:
        """Ollama needs no key; reachability is checked per call."""
        return bool(self._base_url)

    def get_default_model(self) -> str:
        return self._model

    async def _complete(self, prompt: str, options: GenerationOptions) -> str:
        resolving = options.task == "resolve"
        payload = {
            "model": options.model or self._model,
            "prompt": RESOLVE_SYSTEM_PREFIX + prompt if resolving else prompt,
            "stream": False,
            "options": {
                "temperature": options.temperature if options.temperature is not None
                else (self.RESOLVE_TEMPERATURE if resolving else self.DEFAULT_TEMPERATURE),
                "num_predict": options.max_tokens
                or (self.RESOLVE_MAX_TOKENS if resolving else self.DEFAULT_MAX_TOKENS),
            },
        }

        logger.debug(f"Calling Ollama model {payload['model']} at {self._base_url}")
        data = await self._post_json(f"{self._base_url}/api/generate", payload)

        content = data.get("response") if isinstance(data, dict) else None
        if not content:
            raise ProviderError(
                "No response content from Ollama",
                self.name(),
                ProviderErrorKind.MALFORMED_RESPONSE,
            )
        return content
