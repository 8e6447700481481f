"""
Provider Orchestrator

Runs a generation request across AI providers with per-provider circuit
breakers, per-call timeouts, chunking of oversized diffs and fallback.

Sequential mode (default) stops at the first provider that returns at
least one candidate. Parallel mode queries every provider concurrently,
waits for all of them, and merges the successful results with a
consensus bonus. Individual provider failures are logged and recorded as
attempts; only exhaustion of the whole list raises AllProvidersFailedError.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, TYPE_CHECKING

from .chunker import ContentChunker, DEFAULT_MAX_CHUNK_CHARS, TOKEN_THRESHOLD, estimate_tokens
from .circuit_breaker import CircuitBreakerRegistry
from .errors import (
    AllProvidersFailedError,
    CircuitOpenError,
    ProviderError,
    ProviderErrorKind,
)
from .providers import DEFAULT_PROVIDER_ORDER, AIProvider, GenerationOptions
from .scorer import MessageScorer

if TYPE_CHECKING:
    from .activity_log import ActivityLog


logger = logging.getLogger(__name__)


@dataclass
class ProviderAttempt:
    """One provider's attempt at a request."""
    provider_name: str
    start_time: float
    success: bool = False
    error_kind: Optional[str] = None
    response_time_ms: float = 0.0
    error: Optional[str] = None
    chunks: int = 1


@dataclass
class GenerationResult:
    """Candidates plus the trail of attempts that produced them."""
    messages: list[str]
    provider: Optional[str] = None
    attempts: list[ProviderAttempt] = field(default_factory=list)
    chunked: bool = False
    merged: bool = False

    @property
    def failed_providers(self) -> list[str]:
        return [a.provider_name for a in self.attempts if not a.success]


class ProviderOrchestrator:
    """
    Fallback and fan-out across AI providers.

    Usage:
        orchestrator = ProviderOrchestrator(build_providers(config))
        messages = await orchestrator.generate(diff, GenerationOptions(count=3))
    """

    def __init__(
        self,
        providers: dict[str, AIProvider],
        breakers: Optional[CircuitBreakerRegistry] = None,
        chunker: Optional[ContentChunker] = None,
        scorer: Optional[MessageScorer] = None,
        token_threshold: int = TOKEN_THRESHOLD,
        max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS,
        call_timeout: float = 60.0,
        parallel: bool = False,
        activity_log: Optional["ActivityLog"] = None,
    ):
        """
        Args:
            providers: Provider name -> instance
            breakers: Registry owning one breaker per provider
            chunker: Chunker for oversized diffs
            scorer: Scorer for cutting pooled candidates down
            token_threshold: Estimated tokens above which a diff is chunked
            max_chunk_chars: Character budget per chunk
            call_timeout: Per-call timeout in seconds
            parallel: Query all providers and merge (opt-in)
            activity_log: Optional structured event sink
        """
        self.providers = dict(providers)
        self.breakers = breakers or CircuitBreakerRegistry()
        self.chunker = chunker or ContentChunker(max_chunk_chars=max_chunk_chars)
        self.scorer = scorer or MessageScorer()
        self.token_threshold = token_threshold
        self.max_chunk_chars = max_chunk_chars
        self.call_timeout = call_timeout
        self.parallel = parallel
        self.activity_log = activity_log

    # ========================================================================
    # Ordering
    # ========================================================================

    def resolve_order(
        self,
        provider_list: Optional[list[str]] = None,
        preferred: Optional[str] = None,
    ) -> list[str]:
        """
        Decide which providers to try, in order.

        An explicit provider_list is used as given. Otherwise the default
        order (local before cloud, then any other configured providers) is
        used with the preferred provider moved to the front.
        """
        if provider_list:
            return list(dict.fromkeys(provider_list))

        order = [n for n in DEFAULT_PROVIDER_ORDER if n in self.providers]
        order += [n for n in self.providers if n not in order]
        if preferred:
            order = [preferred] + [n for n in order if n != preferred]
        return order

    # ========================================================================
    # Generation
    # ========================================================================

    async def generate(
        self,
        prompt: str,
        options: Optional[GenerationOptions] = None,
        provider_list: Optional[list[str]] = None,
        preferred: Optional[str] = None,
        parallel: Optional[bool] = None,
    ) -> list[str]:
        """
        Generate candidate messages.

        Raises:
            AllProvidersFailedError: No provider produced a candidate
        """
        result = await self.generate_detailed(prompt, options, provider_list, preferred, parallel)
        return result.messages

    async def generate_detailed(
        self,
        prompt: str,
        options: Optional[GenerationOptions] = None,
        provider_list: Optional[list[str]] = None,
        preferred: Optional[str] = None,
        parallel: Optional[bool] = None,
    ) -> GenerationResult:
        """
        Generate candidates and report every attempt.

        Args:
            prompt: Diff (task="commit") or verbatim prompt (task="resolve")
            options: Generation options (count, language, ...)
            provider_list: Explicit provider order
            preferred: Provider to try first / give the consensus tie-break
            parallel: Override the orchestrator's parallel setting

        Returns:
            GenerationResult

        Raises:
            AllProvidersFailedError: No provider produced a candidate
        """
        options = options or GenerationOptions()
        order = self.resolve_order(provider_list, preferred)
        use_parallel = self.parallel if parallel is None else parallel
        chunked = options.task == "commit" and estimate_tokens(prompt) > self.token_threshold

        if use_parallel and len(order) > 1:
            return await self._generate_parallel(prompt, options, order, preferred, chunked)

        attempts: list[ProviderAttempt] = []
        for name in order:
            attempt, messages = await self._attempt_provider(name, prompt, options, chunked)
            attempts.append(attempt)
            if messages:
                logger.info(f"Generated {len(messages)} candidates with {name}")
                return GenerationResult(
                    messages=messages,
                    provider=name,
                    attempts=attempts,
                    chunked=chunked,
                )

        raise AllProvidersFailedError(attempts)

    async def _generate_parallel(
        self,
        prompt: str,
        options: GenerationOptions,
        order: list[str],
        preferred: Optional[str],
        chunked: bool,
    ) -> GenerationResult:
        outcomes = await asyncio.gather(
            *[self._attempt_provider(name, prompt, options, chunked) for name in order]
        )

        attempts = [attempt for attempt, _ in outcomes]
        per_provider = {
            attempt.provider_name: messages
            for attempt, messages in outcomes
            if messages
        }
        if not per_provider:
            raise AllProvidersFailedError(attempts)

        if len(per_provider) == 1:
            name, messages = next(iter(per_provider.items()))
            return GenerationResult(
                messages=messages[:options.count],
                provider=name,
                attempts=attempts,
                chunked=chunked,
            )

        merged = self.scorer.merge_across_providers(
            per_provider, options.count, preferred_provider=preferred or order[0]
        )
        logger.info(
            f"Merged candidates from {len(per_provider)} providers: "
            f"{', '.join(per_provider)}"
        )
        return GenerationResult(
            messages=merged,
            provider=None,
            attempts=attempts,
            chunked=chunked,
            merged=True,
        )

    async def complete(
        self,
        prompt: str,
        options: Optional[GenerationOptions] = None,
        provider_list: Optional[list[str]] = None,
        preferred: Optional[str] = None,
    ) -> str:
        """
        Single unchunked "resolve" call with the same fallback discipline.

        Returns:
            str: First candidate text from the first provider that answered

        Raises:
            AllProvidersFailedError: No provider answered
        """
        options = options or GenerationOptions()
        if options.task != "resolve":
            options = GenerationOptions(
                count=1,
                task="resolve",
                model=options.model,
                temperature=options.temperature,
                max_tokens=options.max_tokens,
                context=options.context,
            )
        result = await self.generate_detailed(
            prompt, options, provider_list=provider_list, preferred=preferred, parallel=False
        )
        return result.messages[0]

    # ========================================================================
    # Per-provider attempt
    # ========================================================================

    async def _attempt_provider(
        self,
        name: str,
        prompt: str,
        options: GenerationOptions,
        chunked: bool,
    ) -> tuple[ProviderAttempt, list[str]]:
        """Run one provider; never raises provider failures."""
        attempt = ProviderAttempt(provider_name=name, start_time=time.time())
        start = time.monotonic()
        messages: list[str] = []

        provider = self.providers.get(name)
        try:
            if provider is None:
                raise ProviderError(
                    f"Provider '{name}' is not configured",
                    name,
                    ProviderErrorKind.UNAVAILABLE,
                )
            if chunked:
                messages = await self._generate_chunked(name, provider, prompt, options, attempt)
            else:
                messages = await self._call(name, provider, prompt, options)
            attempt.success = True
        except CircuitOpenError as e:
            attempt.error_kind = ProviderErrorKind.CIRCUIT_OPEN.value
            attempt.error = str(e)
            logger.warning(f"Skipping {name}: {e}")
        except ProviderError as e:
            attempt.error_kind = e.kind.value
            attempt.error = str(e)
            logger.warning(f"Provider {name} failed ({e.kind.value}): {e}")
        except Exception as e:
            attempt.error_kind = ProviderErrorKind.UNKNOWN.value
            attempt.error = str(e)
            logger.warning(f"Provider {name} failed unexpectedly: {e}")

        attempt.response_time_ms = round((time.monotonic() - start) * 1000, 2)
        self._record_attempt(attempt)
        return attempt, messages

    async def _generate_chunked(
        self,
        name: str,
        provider: AIProvider,
        diff: str,
        options: GenerationOptions,
        attempt: ProviderAttempt,
    ) -> list[str]:
        """Call the provider once per chunk, in order, and pool the results."""
        chunks = self.chunker.chunk(diff, self.max_chunk_chars)
        attempt.chunks = len(chunks)
        logger.info(f"Diff split into {len(chunks)} chunks for {name}")

        pooled: list[str] = []
        for chunk in chunks:
            framed = options.with_chunk(chunk.index, len(chunks), chunk.semantic_context)
            pooled.extend(await self._call(name, provider, chunk.content, framed))

        best = self.scorer.select_best(pooled, options.count)
        if not best:
            raise ProviderError(
                f"{name} returned only blank candidates across {len(chunks)} chunks",
                name,
                ProviderErrorKind.MALFORMED_RESPONSE,
            )
        return best

    async def _call(
        self,
        name: str,
        provider: AIProvider,
        prompt: str,
        options: GenerationOptions,
    ) -> list[str]:
        """One provider call through its breaker with a timeout."""
        breaker = self.breakers.get(name)

        async def operation() -> list[str]:
            try:
                result = await asyncio.wait_for(
                    provider.generate(prompt, options), timeout=self.call_timeout
                )
            except asyncio.TimeoutError:
                raise ProviderError(
                    f"{name} did not respond within {self.call_timeout}s",
                    name,
                    ProviderErrorKind.TIMEOUT,
                ) from None
            if not result:
                raise ProviderError(
                    f"{name} returned no candidates",
                    name,
                    ProviderErrorKind.MALFORMED_RESPONSE,
                )
            return result

        return await breaker.execute(operation, {"provider": name})

    def _record_attempt(self, attempt: ProviderAttempt) -> None:
        if attempt.success:
            logger.debug(
                f"Attempt {attempt.provider_name} succeeded in {attempt.response_time_ms}ms"
            )
        if self.activity_log is not None:
            self.activity_log.log_provider_attempt(attempt)
