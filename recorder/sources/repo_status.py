"""Source-control status: current commit and whether the worktree is clean."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepoStatus:
    commit: str
    is_clean: bool


def find_git_dir(start: Path) -> Path | None:
    """Walk up from ``start`` looking for a ``.git`` entry."""
    current = start.resolve()
    for candidate in (current, *current.parents):
        git_dir = candidate / ".git"
        if git_dir.exists():
            return git_dir
    return None


def _git(worktree: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", "-C", str(worktree), *args],
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


class GitRepoStatusSource:
    """Reads HEAD and cleanliness with the ``git`` executable."""

    def resolve(self, start_dir: str | Path = ".") -> RepoStatus | None:
        git_dir = find_git_dir(Path(start_dir))
        if git_dir is None:
            logger.debug("No git repository above %s", start_dir)
            return None

        worktree = git_dir.parent
        try:
            commit = _git(worktree, "rev-parse", "HEAD").strip()
            porcelain = _git(worktree, "status", "--porcelain")
        except (OSError, subprocess.CalledProcessError) as e:
            logger.warning("Could not read git status in %s: %s", worktree, e)
            return None

        status = RepoStatus(commit=commit, is_clean=not porcelain.strip())
        logger.debug("Repository at %s is at %s (clean=%s)", worktree, commit, status.is_clean)
        return status
