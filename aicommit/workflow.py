"""
Auto-commit workflow.

Stage, generate a message, commit, pull (resolving conflicts through the
pipeline and the user), then push:

    workflow = AutoCommitWorkflow(repo, orchestrator, pipeline, ConsolePromptIO(), config)
    result = await workflow.run()
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .activity_log import ActivityLog
from .config import UserConfig
from .conflict.parser import has_conflict_markers
from .conflict.pipeline import (
    ConflictResolutionPipeline,
    ResolutionOutcome,
    ResolveAllResult,
    format_escalation,
)
from .errors import AllProvidersFailedError, RepositoryError
from .git import GitRepository
from .orchestrator import ProviderOrchestrator
from .prompt_io import PromptIO
from .providers import GenerationOptions

logger = logging.getLogger(__name__)

CUSTOM_MESSAGE_CHOICE = "Write my own message"
DEFAULT_REMOTE = "origin"


@dataclass
class PullResult:
    completed: bool
    resolution: Optional[ResolveAllResult] = None
    merge_sha: Optional[str] = None


@dataclass
class WorkflowResult:
    """What a workflow run did."""
    committed: bool = False
    commit_sha: Optional[str] = None
    message: Optional[str] = None
    pulled: bool = False
    resolution: Optional[ResolveAllResult] = None
    pushed: bool = False
    aborted: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.aborted and not self.errors


class AutoCommitWorkflow:
    """Commit, pull and resolve, push."""

    def __init__(
        self,
        repo: GitRepository,
        orchestrator: ProviderOrchestrator,
        pipeline: ConflictResolutionPipeline,
        io: PromptIO,
        config: Optional[UserConfig] = None,
        activity_log: Optional[ActivityLog] = None,
    ):
        self.repo = repo
        self.orchestrator = orchestrator
        self.pipeline = pipeline
        self.io = io
        self.config = config or UserConfig(UserConfig.get_default())
        self.activity_log = activity_log

    # ========================================================================
    # Commit
    # ========================================================================

    async def generate_messages(self, diff: str, count: Optional[int] = None) -> list[str]:
        """
        Generate commit message candidates for a diff.

        Raises:
            AllProvidersFailedError: No provider produced a candidate
        """
        settings = self.config.generation
        options = GenerationOptions(
            count=count or settings.get("count", 3),
            language=settings.get("language", "en"),
            conventional=settings.get("conventional", True),
        )
        result = await self.orchestrator.generate_detailed(
            diff, options, preferred=self.config.preferred_provider
        )
        if self.activity_log is not None:
            self.activity_log.log_messages_generated(result.provider, len(result.messages), result.merged)
        return result.messages

    def select_message(self, messages: list[str]) -> Optional[str]:
        """
        Let the user pick a candidate or type their own.

        Returns:
            The chosen message, or None if the user gave nothing
        """
        if messages:
            choice = self.io.choose_one("Choose a commit message:", messages + [CUSTOM_MESSAGE_CHOICE])
            if choice != CUSTOM_MESSAGE_CHOICE:
                return choice
        message = self.io.free_text_input("Commit message:")
        return message or None

    async def commit_changes(self) -> Optional[tuple[str, str]]:
        """
        Stage everything, generate a message and commit.

        Returns:
            (message, sha), or None when there was nothing to commit or
            the user gave no message
        """
        self.repo.stage_all()
        diff = self.repo.staged_diff()
        if not diff.strip():
            self.io.show("Nothing to commit.")
            return None

        try:
            messages = await self.generate_messages(diff)
        except AllProvidersFailedError as e:
            logger.warning(f"Message generation failed: {e}")
            self.io.show(f"Could not generate a message ({e}).")
            messages = []

        message = self.select_message(messages)
        if not message:
            self.io.show("No commit message given, skipping commit.")
            return None

        sha = self.repo.commit(message)
        logger.info(f"Committed {sha[:8]}: {message}")
        if self.activity_log is not None:
            self.activity_log.log_commit(message, sha)
        return message, sha

    # ========================================================================
    # Pull and resolve
    # ========================================================================

    async def pull_and_resolve(self, remote: str = DEFAULT_REMOTE, branch: Optional[str] = None) -> PullResult:
        """
        Pull, resolving any merge conflicts.

        Files the pipeline cannot resolve go to manual_resolution. The merge
        is committed once every file is clean.

        Returns:
            PullResult; completed is False when the user aborted
        """
        if self.repo.pull(remote, branch, strategy="merge"):
            return PullResult(completed=True)

        conflicted = self.repo.conflicted_paths()
        self.io.show(f"Pull stopped on conflicts in {len(conflicted)} file(s).")
        resolution = await self.pipeline.resolve_all(conflicted)
        self.repo.stage(resolution.resolved_paths)
        self.io.show(
            f"Resolved {resolution.resolved_count}/{resolution.total_files} automatically."
        )

        pending = [o for o in resolution.outcomes if not o.success]
        if pending and not self.manual_resolution(pending):
            return PullResult(completed=False, resolution=resolution)

        merge_sha = self.repo.commit_merge()
        return PullResult(completed=True, resolution=resolution, merge_sha=merge_sha)

    def manual_resolution(self, outcomes: list[ResolutionOutcome]) -> bool:
        """
        Hand unresolved files to the user until they are clean.

        Returns:
            True once no file has conflict markers, False if the user aborts
        """
        pending = [o.file_path for o in outcomes]
        for outcome in outcomes:
            self.io.show(format_escalation(outcome))

        while pending:
            self.io.show("Waiting on: " + ", ".join(pending))
            if not self.io.confirm("Have you resolved these files? Re-check now", default=True):
                self.io.show("Aborted; the merge is left in progress.")
                return False

            still = [path for path in pending if self._still_conflicted(path)]
            self.repo.stage([path for path in pending if path not in still])
            pending = still
            if pending:
                self.io.show(f"{len(pending)} file(s) still contain conflict markers.")
        return True

    def _still_conflicted(self, path: str) -> bool:
        full_path = self.repo.repo_path / path
        if not full_path.exists():
            return False
        with open(full_path, encoding="utf-8", errors="replace") as f:
            return has_conflict_markers(f.read())

    # ========================================================================
    # Full run
    # ========================================================================

    async def run(self, push: bool = True, pull: bool = True) -> WorkflowResult:
        """Commit, then pull and resolve, then push."""
        result = WorkflowResult()
        try:
            committed = await self.commit_changes()
            if committed:
                result.committed = True
                result.message, result.commit_sha = committed

            if not (pull or push):
                return result

            remotes = self.repo.remotes()
            if not remotes:
                self.io.show("No remote configured, skipping pull and push.")
                return result
            remote = DEFAULT_REMOTE if DEFAULT_REMOTE in remotes else remotes[0]
            branch = self.repo.current_branch()

            if pull:
                pulled = await self.pull_and_resolve(remote, branch)
                result.resolution = pulled.resolution
                if not pulled.completed:
                    result.aborted = True
                    return result
                result.pulled = True

            if push:
                self.repo.push(remote, branch)
                result.pushed = True
                self.io.show(f"Pushed {branch} to {remote}.")
        except RepositoryError as e:
            logger.error(f"Workflow stopped: {e}")
            result.errors.append(str(e))
        return result
