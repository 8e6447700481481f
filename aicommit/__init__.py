"""
aicommit - AI commit messages and merge conflict resolution

Generates commit message candidates for staged changes with a chain of
AI providers (local first, then cloud) guarded by circuit breakers, and
resolves merge conflicts with file-kind heuristics, AI assistance and,
as a last resort, the user.
"""

__version__ = "0.1.0"

from .errors import (
    AICommitError,
    AllProvidersFailedError,
    BackupError,
    ChunkIntegrityError,
    CircuitOpenError,
    ConfigurationError,
    ProviderError,
    ProviderErrorKind,
    RepositoryError,
)
from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from .chunker import Chunk, ContentChunker, estimate_tokens
from .scorer import MessageScorer
from .orchestrator import GenerationResult, ProviderAttempt, ProviderOrchestrator
from .config import UserConfig
from .activity_log import ActivityLog, EventType
from .git import GitRepository

__all__ = [
    "__version__",
    # Errors
    "AICommitError",
    "AllProvidersFailedError",
    "BackupError",
    "ChunkIntegrityError",
    "CircuitOpenError",
    "ConfigurationError",
    "ProviderError",
    "ProviderErrorKind",
    "RepositoryError",
    # Core
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitState",
    "Chunk",
    "ContentChunker",
    "estimate_tokens",
    "MessageScorer",
    "GenerationResult",
    "ProviderAttempt",
    "ProviderOrchestrator",
    # Ambient
    "UserConfig",
    "ActivityLog",
    "EventType",
    "GitRepository",
]
