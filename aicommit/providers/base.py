"""
Base provider interface for commit-message generation.

This module defines the abstract base class that all AI providers must
implement, the GenerationOptions passed to every call, and the shared HTTP
plumbing (error classification, key redaction, bounded retries).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Optional, TYPE_CHECKING

import httpx

from ..errors import ProviderError, ProviderErrorKind
from .prompts import build_commit_prompt, parse_candidates

if TYPE_CHECKING:
    from ..chunker import ChunkContext


logger = logging.getLogger(__name__)


@dataclass
class GenerationOptions:
    """Options for one generate() call."""

    count: int = 3
    language: str = "en"
    conventional: bool = True
    context: dict = field(default_factory=dict)
    task: str = "commit"  # "commit" or "resolve"
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    # Chunk framing, set by the orchestrator when a diff is split
    chunk_index: int = 0
    total_chunks: int = 1
    is_first_chunk: bool = True
    is_last_chunk: bool = True
    chunk_context: Optional["ChunkContext"] = None

    def with_chunk(
        self,
        index: int,
        total: int,
        chunk_context: Optional["ChunkContext"] = None,
    ) -> "GenerationOptions":
        """Return a copy framed for chunk `index` of `total`."""
        return replace(
            self,
            chunk_index=index,
            total_chunks=total,
            is_first_chunk=index == 0,
            is_last_chunk=index == total - 1,
            chunk_context=chunk_context,
        )


def classify_http_error(
    error: Exception,
    provider: str,
    redact: Callable[[str], str] = lambda s: s,
) -> ProviderError:
    """
    Map an httpx exception to a ProviderError with a ProviderErrorKind.

    Args:
        error: Exception raised by httpx
        provider: Provider name for the error
        redact: Removes secrets from the message

    Returns:
        ProviderError
    """
    if isinstance(error, ProviderError):
        return error
    if isinstance(error, httpx.TimeoutException):
        return ProviderError(
            f"Request to {provider} timed out", provider, ProviderErrorKind.TIMEOUT
        )
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        detail = redact(_parse_error_response(error.response))
        if status == 429:
            kind = ProviderErrorKind.RATE_LIMITED
            message = f"Rate limit exceeded for {provider}: {detail}"
        elif status in (401, 403):
            kind = ProviderErrorKind.AUTHENTICATION
            message = f"Authentication failed for {provider}: {detail}"
        else:
            kind = ProviderErrorKind.API_ERROR
            message = f"{provider} API error ({status}): {detail}"
        return ProviderError(message, provider, kind, status_code=status)
    if isinstance(error, httpx.TransportError):
        return ProviderError(
            f"Cannot connect to {provider}: {redact(str(error))}",
            provider,
            ProviderErrorKind.NETWORK,
        )
    if isinstance(error, ValueError):
        return ProviderError(
            f"Invalid response from {provider}: {redact(str(error))}",
            provider,
            ProviderErrorKind.MALFORMED_RESPONSE,
        )
    return ProviderError(f"{provider} error: {redact(str(error))}", provider)


def _parse_error_response(response: httpx.Response) -> str:
    """Parse error message from API response."""
    error_msg = f"API error {response.status_code}"
    try:
        error_data = response.json()
    except ValueError:
        return error_msg
    if isinstance(error_data, dict) and "error" in error_data:
        error_detail = error_data["error"]
        if isinstance(error_detail, dict):
            return error_detail.get("message", error_msg)
        return str(error_detail)
    return error_msg


class AIProvider(ABC):
    """
    Abstract base class for AI providers.

    Subclasses implement name(), is_available() and _complete(); generate()
    turns a diff (or a verbatim prompt for task="resolve") into candidates.
    """

    DEFAULT_TIMEOUT = 60.0
    MAX_RETRIES = 3
    RETRY_DELAY = 1.0  # seconds, doubled per retry
    DEFAULT_TEMPERATURE = 0.7
    DEFAULT_MAX_TOKENS = 150
    RESOLVE_TEMPERATURE = 0.3
    RESOLVE_MAX_TOKENS = 2000

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            timeout: HTTP timeout in seconds
            max_retries: Attempts per call for retryable failures
            retry_delay: Base backoff delay in seconds
            client: Shared AsyncClient (the caller owns and closes it)
        """
        self._timeout = timeout or self.DEFAULT_TIMEOUT
        self._max_retries = self.MAX_RETRIES if max_retries is None else max_retries
        self._retry_delay = self.RETRY_DELAY if retry_delay is None else retry_delay
        self._client = client
        self._owns_client = client is None

    @abstractmethod
    def name(self) -> str:
        """
        Return the provider identifier.

        Returns:
            str: Provider name (e.g., 'ollama', 'groq', 'openrouter')
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check if this provider can be used (API key set, endpoint configured).

        Returns:
            bool: True if the provider is ready to use
        """
        pass

    @abstractmethod
    async def _complete(self, prompt: str, options: GenerationOptions) -> str:
        """
        Send one prompt and return the raw completion text.

        Raises:
            ProviderError: The request failed or returned no content
            httpx.HTTPError: Transport or status failures (classified by caller)
        """
        pass

    def get_default_model(self) -> Optional[str]:
        return None

    async def generate(
        self,
        prompt: str,
        options: Optional[GenerationOptions] = None,
    ) -> list[str]:
        """
        Generate candidates for a diff or a verbatim prompt.

        Args:
            prompt: Diff text (task="commit") or full prompt (task="resolve")
            options: Generation options

        Returns:
            list[str]: At least one candidate

        Raises:
            ProviderError: Call failed or the response held no usable candidate
        """
        options = options or GenerationOptions()

        if options.task == "resolve":
            text = await self._with_retry(lambda: self._complete(prompt, options))
            text = text.strip()
            if not text:
                raise ProviderError(
                    f"No response content from {self.name()}",
                    self.name(),
                    ProviderErrorKind.MALFORMED_RESPONSE,
                )
            return [text]

        full_prompt = build_commit_prompt(prompt, options)
        text = await self._with_retry(lambda: self._complete(full_prompt, options))
        candidates = parse_candidates(text, options.count)
        if not candidates:
            raise ProviderError(
                f"No valid commit messages found in {self.name()} response",
                self.name(),
                ProviderErrorKind.MALFORMED_RESPONSE,
            )
        return candidates

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ========================================================================
    # HTTP helpers
    # ========================================================================

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def _post_json(
        self,
        url: str,
        payload: dict,
        headers: Optional[dict] = None,
    ) -> Any:
        """POST JSON and return the decoded body; non-2xx raises."""
        client = await self._get_client()
        try:
            response = await client.post(url, json=payload, headers=headers, timeout=self._timeout)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise classify_http_error(e, self.name(), self._sanitize_error) from e

    def _sanitize_error(self, error: str) -> str:
        """Remove any API keys from error messages."""
        return error

    async def _with_retry(self, fn: Callable[[], Awaitable[str]]) -> str:
        """
        Run fn, retrying retryable ProviderErrors with exponential backoff.

        Non-retryable errors (auth, 4xx, malformed) are raised immediately.
        """
        attempts = max(1, self._max_retries)
        last_error: Optional[ProviderError] = None
        for attempt in range(attempts):
            try:
                return await fn()
            except ProviderError as e:
                last_error = e
                if not e.retryable or attempt == attempts - 1:
                    raise
                delay = self._retry_delay * (2 ** attempt)
                logger.debug(
                    f"{self.name()} attempt {attempt + 1}/{attempts} failed "
                    f"({e.kind.value}), retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
        raise last_error  # pragma: no cover
