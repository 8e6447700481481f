"""
Error Taxonomy

Exceptions raised across the commit-generation and conflict-resolution
pipelines. Individual provider failures are recovered locally; only
AllProvidersFailedError surfaces to callers of the orchestrator.
"""

from enum import Enum
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .orchestrator import ProviderAttempt


# ============================================================================
# BASE
# ============================================================================

class AICommitError(Exception):
    """Base exception for aicommit errors"""
    pass


class ConfigurationError(AICommitError):
    """Configuration is invalid or unreadable"""
    pass


class RepositoryError(AICommitError):
    """A git command failed"""
    pass


# ============================================================================
# PROVIDER ERRORS
# ============================================================================

class ProviderErrorKind(Enum):
    """Why a provider call failed"""
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    NETWORK = "network"
    MALFORMED_RESPONSE = "malformed_response"
    AUTHENTICATION = "authentication"
    API_ERROR = "api_error"
    UNAVAILABLE = "unavailable"
    CIRCUIT_OPEN = "circuit_open"
    UNKNOWN = "unknown"


RETRYABLE_KINDS = frozenset({
    ProviderErrorKind.RATE_LIMITED,
    ProviderErrorKind.TIMEOUT,
    ProviderErrorKind.NETWORK,
})


class CircuitOpenError(AICommitError):
    """Circuit breaker is open, the operation was not attempted"""

    def __init__(self, name: str, retry_after_seconds: float = 0.0):
        self.name = name
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Circuit breaker '{name}' is open. Retry in {max(0, round(retry_after_seconds))}s"
        )


class ProviderError(AICommitError):
    """The provider call was attempted and failed"""

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        kind: ProviderErrorKind = ProviderErrorKind.UNKNOWN,
        status_code: Optional[int] = None,
    ):
        self.provider = provider
        self.kind = kind
        self.status_code = status_code
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        """True if a bounded retry inside the same attempt may help."""
        if self.kind in RETRYABLE_KINDS:
            return True
        return (
            self.kind == ProviderErrorKind.API_ERROR
            and self.status_code is not None
            and self.status_code >= 500
        )


class AllProvidersFailedError(AICommitError):
    """Every provider in the fallback chain failed or was skipped"""

    def __init__(self, attempts: list["ProviderAttempt"]):
        self.attempts = list(attempts)
        if self.attempts:
            details = "; ".join(
                f"{a.provider_name}: {a.error_kind or 'failed'} ({a.error or 'no output'})"
                for a in self.attempts
            )
        else:
            details = "no providers configured"
        super().__init__(f"All AI providers failed. Tried: {details}")

    @property
    def providers_tried(self) -> list[str]:
        return [a.provider_name for a in self.attempts]


# ============================================================================
# CHUNKING / CONFLICT ERRORS
# ============================================================================

class ChunkIntegrityError(AICommitError):
    """Reassembly would not reconstruct the original chunk ordering"""
    pass


class BackupError(AICommitError):
    """Backup copy could not be written before overwriting a file"""

    def __init__(self, file_path: str, reason: str):
        self.file_path = file_path
        super().__init__(f"Failed to back up {file_path}: {reason}")
