"""
Conflict Resolution Pipeline

Resolves one conflicted file at a time through an ordered list of
strategies, stopping at the first that leaves no conflict markers:

1. heuristic   - rule by file kind (lock, docs, config, env, source)
2. ai-assisted - provider orchestrator, chunked for large files
3. manual      - escalate to the caller (still_conflicted=True)

Every strategy is a plain async function taking a ConflictContext and
returning a ResolutionOutcome. Before a resolved file is written back, an
immutable timestamped backup is created next to it; if that fails the file
is not touched.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional, TYPE_CHECKING

from ..errors import BackupError
from .ai_resolver import AIConflictResolver
from .heuristics import apply_heuristic
from .parser import has_conflict_markers, parse_conflict_sections

if TYPE_CHECKING:
    from ..activity_log import ActivityLog
    from ..config import UserConfig
    from ..git import GitRepository
    from ..orchestrator import ProviderOrchestrator


logger = logging.getLogger(__name__)

BACKUP_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S%f"


class ResolutionStrategyName(Enum):
    """Stage that produced an outcome."""
    HEURISTIC = "heuristic"
    AI_ASSISTED = "ai-assisted"
    MANUAL = "manual"


@dataclass
class ResolutionOutcome:
    """Result of resolving a single file."""
    file_path: str
    strategy_used: Optional[ResolutionStrategyName] = None
    resolved_content: Optional[str] = None
    still_conflicted: bool = True
    rule: Optional[str] = None
    backup_path: Optional[str] = None
    detail: str = ""
    failed: bool = False

    @property
    def success(self) -> bool:
        return not self.still_conflicted and not self.failed


@dataclass
class ResolveAllResult:
    """Result of resolving several files."""
    total_files: int
    resolved_count: int
    escalated_count: int
    failed_count: int
    outcomes: list[ResolutionOutcome] = field(default_factory=list)

    @property
    def all_resolved(self) -> bool:
        return self.resolved_count == self.total_files

    @property
    def needs_manual(self) -> list[str]:
        """Paths that still need a human decision."""
        return [o.file_path for o in self.outcomes if not o.success]

    @property
    def resolved_paths(self) -> list[str]:
        return [o.file_path for o in self.outcomes if o.success]


@dataclass
class ConflictContext:
    """Everything a strategy needs to resolve one file."""
    path: str
    content: str
    base: Optional[str] = None
    ours: Optional[str] = None
    theirs: Optional[str] = None
    context_lines: int = 3
    policy: Optional[str] = None
    config: Optional["UserConfig"] = None
    ai_resolver: Optional[AIConflictResolver] = None


Strategy = Callable[[ConflictContext], Awaitable[ResolutionOutcome]]


# ============================================================================
# Strategies
# ============================================================================

async def heuristic_strategy(ctx: ConflictContext) -> ResolutionOutcome:
    """Resolve by file-kind rule."""
    result = apply_heuristic(ctx.path, ctx.content, ctx.context_lines, ctx.policy)
    if result.resolved:
        return ResolutionOutcome(
            file_path=ctx.path,
            strategy_used=ResolutionStrategyName.HEURISTIC,
            resolved_content=result.content,
            still_conflicted=False,
            rule=result.rule,
        )
    if result.rule:
        detail = f"heuristic rule '{result.rule}' left conflict markers"
    elif ctx.policy == "manual":
        detail = "file policy requires manual resolution"
    else:
        detail = f"no heuristic for {result.kind.value} files"
    return ResolutionOutcome(
        file_path=ctx.path,
        strategy_used=ResolutionStrategyName.HEURISTIC,
        resolved_content=result.content,
        rule=result.rule,
        detail=detail,
    )


async def ai_strategy(ctx: ConflictContext) -> ResolutionOutcome:
    """Resolve through the provider orchestrator, when allowed."""
    skip_reason = None
    if ctx.ai_resolver is None:
        skip_reason = "no AI providers configured"
    elif ctx.policy == "manual":
        skip_reason = "file policy requires manual resolution"
    elif ctx.config is not None and not ctx.config.llm_enabled:
        skip_reason = "LLM resolution disabled"
    elif ctx.config is not None and ctx.config.is_sensitive(ctx.path):
        skip_reason = "sensitive file, not sent to external providers"

    if skip_reason:
        logger.info(f"{ctx.path}: skipping AI stage ({skip_reason})")
        return ResolutionOutcome(
            file_path=ctx.path,
            strategy_used=ResolutionStrategyName.AI_ASSISTED,
            detail=f"AI stage skipped: {skip_reason}",
        )

    resolution = await ctx.ai_resolver.resolve(
        ctx.path, ctx.content, ctx.base, ctx.ours, ctx.theirs, ctx.context_lines
    )
    if resolution.resolved:
        rule = "ai" if not resolution.fallback_chunks else "ai-with-fallback"
        return ResolutionOutcome(
            file_path=ctx.path,
            strategy_used=ResolutionStrategyName.AI_ASSISTED,
            resolved_content=resolution.content,
            still_conflicted=False,
            rule=rule,
            detail=f"{resolution.ai_chunks} parts by AI, {resolution.fallback_chunks} by fallback",
        )

    detail = (
        "all AI providers failed"
        if resolution.providers_exhausted else "AI output still contains conflict markers"
    )
    return ResolutionOutcome(
        file_path=ctx.path,
        strategy_used=ResolutionStrategyName.AI_ASSISTED,
        resolved_content=resolution.content,
        detail=detail,
    )


async def manual_strategy(ctx: ConflictContext) -> ResolutionOutcome:
    """Escalate: the caller must resolve this file."""
    sections = parse_conflict_sections(ctx.content, ctx.context_lines)
    return ResolutionOutcome(
        file_path=ctx.path,
        strategy_used=ResolutionStrategyName.MANUAL,
        still_conflicted=True,
        detail=f"{len(sections)} conflict section(s) need manual resolution",
    )


DEFAULT_STRATEGIES: list[Strategy] = [heuristic_strategy, ai_strategy, manual_strategy]


# ============================================================================
# Pipeline
# ============================================================================

class ConflictResolutionPipeline:
    """
    Heuristic, then AI-assisted, then manual conflict resolution.

    Usage:
        pipeline = ConflictResolutionPipeline(repo_path, orchestrator, config)
        result = await pipeline.resolve_all(repo.conflicted_paths())
        for path in result.needs_manual:
            print(format_escalation(...))
    """

    def __init__(
        self,
        repo_path: Optional[Path] = None,
        orchestrator: Optional["ProviderOrchestrator"] = None,
        config: Optional["UserConfig"] = None,
        strategies: Optional[list[Strategy]] = None,
        context_lines: int = 3,
        activity_log: Optional["ActivityLog"] = None,
        repository: Optional["GitRepository"] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            repo_path: Root that relative paths are resolved against
            orchestrator: Provider orchestrator for the AI stage
            config: User config (policies, sensitive globs, LLM toggle)
            strategies: Ordered strategies (default: heuristic, AI, manual)
            context_lines: Context lines kept around each section
            activity_log: Optional structured event sink
            repository: Git driver, used to read base/ours/theirs stages
            clock: Timestamp source for backup names
        """
        self.repo_path = Path(repo_path) if repo_path else Path.cwd()
        self.orchestrator = orchestrator
        self.config = config
        self.strategies = list(strategies) if strategies is not None else list(DEFAULT_STRATEGIES)
        self.context_lines = context_lines
        self.activity_log = activity_log
        self.repository = repository
        self._clock = clock

        self.ai_resolver: Optional[AIConflictResolver] = None
        if orchestrator is not None:
            self.ai_resolver = AIConflictResolver(
                orchestrator,
                chunk_threshold=orchestrator.token_threshold,
                max_chunk_chars=orchestrator.max_chunk_chars,
                preferred=config.preferred_provider if config else None,
            )

    async def resolve_content(
        self,
        path: str,
        content: str,
        base: Optional[str] = None,
        ours: Optional[str] = None,
        theirs: Optional[str] = None,
    ) -> ResolutionOutcome:
        """
        Run the strategies over in-memory content. Touches no files.

        Returns:
            First outcome with still_conflicted=False, else a manual outcome
        """
        ctx = ConflictContext(
            path=path,
            content=content,
            base=base,
            ours=ours,
            theirs=theirs,
            context_lines=self.context_lines,
            policy=self.config.get_file_policy(path) if self.config else None,
            config=self.config,
            ai_resolver=self.ai_resolver,
        )

        last: Optional[ResolutionOutcome] = None
        for strategy in self.strategies:
            outcome = await strategy(ctx)
            if not outcome.still_conflicted:
                used = outcome.strategy_used.value if outcome.strategy_used else strategy.__name__
                logger.info(f"{path}: resolved by {used} ({outcome.rule})")
                return outcome
            logger.debug(f"{path}: {strategy.__name__} did not resolve: {outcome.detail}")
            last = outcome

        if last is not None and last.strategy_used == ResolutionStrategyName.MANUAL:
            return last
        return ResolutionOutcome(
            file_path=path,
            strategy_used=ResolutionStrategyName.MANUAL,
            detail=last.detail if last else "no strategies configured",
        )

    async def resolve_file(self, path: str) -> ResolutionOutcome:
        """
        Resolve one file on disk.

        Raises:
            BackupError: Backup could not be written; the file is untouched
            OSError: File could not be read or written
        """
        full_path = self.repo_path / path
        start = time.monotonic()
        with open(full_path, encoding="utf-8", newline="") as f:
            content = f.read()

        if not has_conflict_markers(content):
            return ResolutionOutcome(
                file_path=path,
                resolved_content=content,
                still_conflicted=False,
                rule="no-conflicts",
                detail="file has no conflict markers",
            )

        base = ours = theirs = None
        if self.repository is not None:
            base = self.repository.show_stage(path, 1)
            ours = self.repository.show_stage(path, 2)
            theirs = self.repository.show_stage(path, 3)

        outcome = await self.resolve_content(path, content, base, ours, theirs)

        if outcome.still_conflicted:
            logger.warning(f"{path}: needs manual resolution ({outcome.detail})")
            if self.activity_log is not None:
                self.activity_log.log_escalation(outcome)
            return outcome

        outcome.backup_path = str(self.write_backup(full_path, content))
        with open(full_path, "w", encoding="utf-8", newline="") as f:
            f.write(outcome.resolved_content)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if self.activity_log is not None:
            self.activity_log.log_resolution(outcome, elapsed_ms)
        return outcome

    async def resolve_all(self, paths: Optional[list[str]] = None) -> ResolveAllResult:
        """
        Resolve several files, one at a time.

        A file whose backup or read fails is reported as failed and the
        loop continues with the next file.

        Args:
            paths: Files to resolve (default: the repository's conflicted paths)
        """
        if paths is None:
            paths = self.repository.conflicted_paths() if self.repository else []

        outcomes = []
        resolved = escalated = failed = 0
        for path in paths:
            try:
                outcome = await self.resolve_file(path)
            except (BackupError, OSError, UnicodeDecodeError) as e:
                logger.error(f"Failed to resolve {path}: {e}")
                outcome = ResolutionOutcome(file_path=path, failed=True, detail=str(e))

            outcomes.append(outcome)
            if outcome.failed:
                failed += 1
            elif outcome.still_conflicted:
                escalated += 1
            else:
                resolved += 1

        return ResolveAllResult(
            total_files=len(paths),
            resolved_count=resolved,
            escalated_count=escalated,
            failed_count=failed,
            outcomes=outcomes,
        )

    def write_backup(self, full_path: Path, content: str) -> Path:
        """
        Write `<path>.<timestamp>.bak` with exclusive create.

        Raises:
            BackupError: The backup could not be created
        """
        stamp = self._clock().strftime(BACKUP_TIMESTAMP_FORMAT)
        backup = full_path.with_name(f"{full_path.name}.{stamp}.bak")
        try:
            with open(backup, "x", encoding="utf-8", newline="") as f:
                f.write(content)
        except OSError as e:
            raise BackupError(str(full_path), str(e)) from e
        logger.debug(f"Backed up {full_path} to {backup}")
        return backup


def format_escalation(outcome: ResolutionOutcome) -> str:
    """
    Format an escalated outcome for interactive display.

    Returns:
        Formatted string for terminal display ("" if nothing to escalate)
    """
    if outcome.success:
        return ""

    lines = [
        "=" * 60,
        f"MANUAL DECISION REQUIRED: {outcome.file_path}",
        "=" * 60,
        "",
    ]
    if outcome.detail:
        lines += [f"Reason: {outcome.detail}", ""]
    lines += [
        "OPTIONS:",
        "  Open the file in your editor and resolve the conflict markers",
        "  Keep one side with `git checkout --ours/--theirs <file>`",
        "  Then confirm to re-check the file for remaining markers",
        "=" * 60,
    ]
    return "\n".join(lines)
