"""
Activity Log

Structured activity events appended to .aicommit_log.jsonl in the
repository, one JSON object per line:

    {"timestamp": "...", "event_type": "conflict_resolved",
     "message": "Resolved conflict in src/cli.py",
     "details": {"file": "src/cli.py", "strategy": "heuristic", ...}}
"""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .conflict.pipeline import ResolutionOutcome
    from .orchestrator import ProviderAttempt


logger = logging.getLogger(__name__)

LOG_FILE_NAME = ".aicommit_log.jsonl"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventType(str, Enum):
    """Types of activity events."""
    PROVIDER_ATTEMPT = "provider_attempt"
    MESSAGES_GENERATED = "messages_generated"
    CONFLICT_RESOLVED = "conflict_resolved"
    CONFLICT_ESCALATED = "conflict_escalated"
    COMMIT_CREATED = "commit_created"


class ActivityEvent(BaseModel):
    """A single event in the activity log."""
    timestamp: datetime = Field(default_factory=_utc_now)
    event_type: EventType
    message: str = ""
    details: dict = Field(default_factory=dict)


class ActivityLog:
    """Append-only JSONL event log for one working directory."""

    def __init__(self, working_dir: Optional[Path] = None):
        self.working_dir = Path(working_dir) if working_dir else Path.cwd()

    @property
    def log_file(self) -> Path:
        return self.working_dir / LOG_FILE_NAME

    def record(self, event_type: EventType, details: Optional[dict] = None, message: str = "") -> ActivityEvent:
        """Write an event to the log file."""
        event = ActivityEvent(event_type=event_type, message=message, details=details or {})
        try:
            with open(self.log_file, 'a') as f:
                f.write(json.dumps(event.model_dump(mode='json'), default=str) + '\n')
        except OSError as e:
            logger.warning(f"Could not write activity log {self.log_file}: {e}")
        return event

    def log_provider_attempt(self, attempt: "ProviderAttempt") -> ActivityEvent:
        status = "succeeded" if attempt.success else f"failed ({attempt.error_kind})"
        return self.record(
            EventType.PROVIDER_ATTEMPT,
            {
                "provider": attempt.provider_name,
                "success": attempt.success,
                "error_kind": attempt.error_kind,
                "error": attempt.error,
                "response_time_ms": attempt.response_time_ms,
                "chunks": attempt.chunks,
            },
            message=f"Provider {attempt.provider_name} {status}",
        )

    def log_messages_generated(self, provider: Optional[str], count: int, merged: bool = False) -> ActivityEvent:
        return self.record(
            EventType.MESSAGES_GENERATED,
            {"provider": provider, "count": count, "merged": merged},
            message=f"Generated {count} commit message candidates",
        )

    def log_resolution(self, outcome: "ResolutionOutcome", resolution_time_ms: int) -> ActivityEvent:
        """
        Log a conflict resolution.

        Args:
            outcome: Resolved outcome
            resolution_time_ms: Time taken to resolve in milliseconds
        """
        details = {
            "file": outcome.file_path,
            "strategy": outcome.strategy_used.value if outcome.strategy_used else None,
            "rule": outcome.rule,
            "resolution_time_ms": resolution_time_ms,
        }
        if outcome.backup_path:
            details["backup"] = outcome.backup_path
        return self.record(
            EventType.CONFLICT_RESOLVED,
            details,
            message=f"Resolved conflict in {outcome.file_path}",
        )

    def log_escalation(self, outcome: "ResolutionOutcome") -> ActivityEvent:
        """Log a conflict that needs human intervention."""
        return self.record(
            EventType.CONFLICT_ESCALATED,
            {"file": outcome.file_path, "reason": outcome.detail},
            message=f"Escalated conflict in {outcome.file_path}: {outcome.detail}",
        )

    def log_commit(self, message: str, sha: Optional[str] = None) -> ActivityEvent:
        return self.record(
            EventType.COMMIT_CREATED,
            {"message": message, "sha": sha},
            message=f"Created commit: {message}",
        )

    def read_events(self) -> list[ActivityEvent]:
        """Read all events; unparseable lines are skipped."""
        if not self.log_file.exists():
            return []
        events = []
        with open(self.log_file) as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(ActivityEvent.model_validate_json(line))
                except ValueError:
                    logger.debug(f"Skipping malformed activity log line: {line[:80]}")
        return events
