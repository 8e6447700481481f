"""
Base for providers that speak the OpenAI-compatible chat completions API.
"""

import os
import logging
from typing import Optional

import httpx

from ..errors import ProviderError, ProviderErrorKind
from .base import AIProvider, GenerationOptions


logger = logging.getLogger(__name__)

COMMIT_SYSTEM_PROMPT = (
    "You are an expert software developer who writes clear, concise commit messages."
)
RESOLVE_SYSTEM_PROMPT = (
    "You are an expert software developer who resolves merge conflicts. "
    "Return only the resolved file content."
)


class ChatCompletionsProvider(AIProvider):
    """
    Provider for any `/chat/completions` endpoint.

    Subclasses set API_URL, API_KEY_ENV, MODEL_ENV and DEFAULT_MODEL.
    """

    API_URL = ""
    API_KEY_ENV = ""
    MODEL_ENV = ""
    DEFAULT_MODEL = ""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout, max_retries, retry_delay, client)
        self._api_key = api_key or os.environ.get(self.API_KEY_ENV)
        self._model = model or os.environ.get(self.MODEL_ENV, self.DEFAULT_MODEL)

    def is_available(self) -> bool:
        """Check if the API key is set."""
        return bool(self._api_key)

    def get_default_model(self) -> str:
        return self._model

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _sanitize_error(self, error: str) -> str:
        """Remove any API keys from error messages."""
        if self._api_key and self._api_key in error:
            error = error.replace(self._api_key, "[REDACTED]")
        return error

    async def _complete(self, prompt: str, options: GenerationOptions) -> str:
        if not self.is_available():
            raise ProviderError(
                f"{self.name()} API key not configured. Set {self.API_KEY_ENV} environment variable.",
                self.name(),
                ProviderErrorKind.UNAVAILABLE,
            )

        resolving = options.task == "resolve"
        payload = {
            "model": options.model or self._model,
            "messages": [
                {
                    "role": "system",
                    "content": RESOLVE_SYSTEM_PROMPT if resolving else COMMIT_SYSTEM_PROMPT,
                },
                {"role": "user", "content": prompt},
            ],
            "max_tokens": options.max_tokens
            or (self.RESOLVE_MAX_TOKENS if resolving else self.DEFAULT_MAX_TOKENS),
            "temperature": options.temperature if options.temperature is not None
            else (self.RESOLVE_TEMPERATURE if resolving else self.DEFAULT_TEMPERATURE),
        }

        logger.debug(f"Calling {self.name()} model {payload['model']}")
        data = await self._post_json(self.API_URL, payload, headers=self._headers())

        content = ""
        if isinstance(data, dict) and data.get("choices"):
            message = data["choices"][0].get("message") or {}
            content = message.get("content") or ""
        if not content:
            raise ProviderError(
                f"No response content from {self.name()}",
                self.name(),
                ProviderErrorKind.MALFORMED_RESPONSE,
            )
        return content
