"""
Git repository driver.

Thin wrapper over the git CLI via subprocess. Failed commands raise
RepositoryError, except pull(), which reports a conflicted merge by
returning False.
"""

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .errors import RepositoryError

logger = logging.getLogger(__name__)

# git index stages
STAGE_BASE = 1
STAGE_OURS = 2
STAGE_THEIRS = 3

# Porcelain XY codes for unmerged paths
_UNMERGED_CODES = {"DD", "AU", "UD", "UA", "DU", "AA", "UU"}


@dataclass
class RepositoryStatus:
    """Paths grouped by change type, from `git status --porcelain`."""
    created: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    renamed: list[str] = field(default_factory=list)
    conflicted: list[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not (self.created or self.modified or self.deleted or self.renamed or self.conflicted)


class GitRepository:
    """
    Git operations for one working tree.

    Usage:
        repo = GitRepository(Path.cwd())
        if repo.is_repository():
            diff = repo.staged_diff()
    """

    def __init__(self, repo_path: Optional[Path] = None):
        """
        Args:
            repo_path: Path to git repository (default: current directory)
        """
        self.repo_path = Path(repo_path) if repo_path else Path.cwd()

    def _run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        result = subprocess.run(
            ["git", *args],
            capture_output=True, text=True,
            cwd=self.repo_path
        )
        if check and result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise RepositoryError(f"git {' '.join(args)} failed: {detail}")
        return result

    # ========================================================================
    # Queries
    # ========================================================================

    def is_repository(self) -> bool:
        """Check if repo_path is inside a git work tree."""
        try:
            result = self._run("rev-parse", "--is-inside-work-tree", check=False)
        except FileNotFoundError:
            logger.warning("git executable not found")
            return False
        return result.returncode == 0 and result.stdout.strip() == "true"

    def status(self) -> RepositoryStatus:
        """Parse `git status --porcelain` into a RepositoryStatus."""
        result = self._run("status", "--porcelain")
        status = RepositoryStatus()
        for line in result.stdout.splitlines():
            if len(line) < 4:
                continue
            code, path = line[:2], line[3:]
            if code in _UNMERGED_CODES:
                status.conflicted.append(path)
            elif "R" in code:
                status.renamed.append(path.split(" -> ")[-1])
            elif code == "??" or "A" in code:
                status.created.append(path)
            elif "D" in code:
                status.deleted.append(path)
            elif "M" in code:
                status.modified.append(path)
        return status

    def staged_diff(self) -> str:
        return self._run("diff", "--cached").stdout

    def current_branch(self) -> str:
        return self._run("rev-parse", "--abbrev-ref", "HEAD").stdout.strip()

    def remotes(self) -> list[str]:
        return [r for r in self._run("remote").stdout.splitlines() if r.strip()]

    def conflicted_paths(self) -> list[str]:
        """
        Get list of files with unresolved conflicts.

        Returns:
            List of file paths relative to repo root
        """
        result = self._run("diff", "--name-only", "--diff-filter=U")
        return [f.strip() for f in result.stdout.splitlines() if f.strip()]

    def show_stage(self, path: str, stage: int) -> Optional[str]:
        """
        Get one index stage of a conflicted file.

        Stage 1 = common ancestor (base), 2 = ours (HEAD), 3 = theirs.

        Returns:
            File content, or None if that stage does not exist
        """
        result = self._run("show", f":{stage}:{path}", check=False)
        if result.returncode != 0:
            return None
        return result.stdout

    # ========================================================================
    # Mutations
    # ========================================================================

    def stage_all(self) -> None:
        self._run("add", "-A")

    def stage(self, paths: list[str]) -> None:
        if paths:
            self._run("add", "--", *paths)

    def commit(self, message: str) -> str:
        """
        Commit staged changes.

        Returns:
            str: The new commit SHA
        """
        self._run("commit", "-m", message)
        return self._run("rev-parse", "HEAD").stdout.strip()

    def commit_merge(self) -> str:
        """Conclude an in-progress merge with its prepared message."""
        self._run("commit", "--no-edit")
        return self._run("rev-parse", "HEAD").stdout.strip()

    def pull(self, remote: str = "origin", branch: Optional[str] = None, strategy: str = "merge") -> bool:
        """
        Pull from a remote.

        Args:
            remote: Remote name
            branch: Branch (default: current branch)
            strategy: "merge" or "rebase"

        Returns:
            True if the pull completed, False if it stopped on conflicts

        Raises:
            RepositoryError: Pull failed for another reason
        """
        args = ["pull", "--rebase" if strategy == "rebase" else "--no-rebase", remote]
        if branch:
            args.append(branch)
        result = self._run(*args, check=False)
        if result.returncode == 0:
            return True
        if self.conflicted_paths():
            logger.info(f"Pull from {remote} stopped on conflicts")
            return False
        detail = (result.stderr or result.stdout or "").strip()
        raise RepositoryError(f"git pull failed: {detail}")

    def push(self, remote: str = "origin", branch: Optional[str] = None) -> None:
        args = ["push", remote]
        if branch:
            args.append(branch)
        self._run(*args)
