"""Thin wrapper around the git CLI used by the change set resolver.

Every git invocation goes through :meth:`GitRepository._run_git` so the
rest of the codebase never calls ``subprocess`` for git directly.
Failures surface as :class:`GitError`.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)


class GitError(Exception):
    """A git command failed or git is not available."""

    def __init__(self, args: tuple[str, ...], message: str) -> None:
        self.args_ = args
        self.message = message
        super().__init__(f"git {' '.join(args)} failed: {message}")


class GitRepository:
    """Read-only queries against a git checkout rooted at *root*."""

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def _run_git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        """Run a git command in the repository root."""
        logger.debug("git %s", " ".join(args))
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=self._root,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise GitError(args, str(exc)) from exc
        if check and result.returncode != 0:
            raise GitError(args, result.stderr.strip() or f"exit status {result.returncode}")
        return result

    def is_repository(self) -> bool:
        result = self._run_git("rev-parse", "--is-inside-work-tree", check=False)
        return result.returncode == 0 and result.stdout.strip() == "true"

    def rev_exists(self, rev: str) -> bool:
        """True if *rev* resolves to a commit in this checkout."""
        result = self._run_git("rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}", check=False)
        return result.returncode == 0

    def changed_files(self, base: str, head: str = "HEAD") -> list[str]:
        """Paths changed between *base* and *head*, renames and deletions included.

        For a rename both the old and the new path are reported, so a file
        moved out of a layer still marks that layer. ``-z`` keeps paths
        verbatim; without it git C-quotes non-ASCII names.
        """
        out = self._run_git(
            "diff", "--name-status", "-z", "--find-renames", "--no-color", base, head
        ).stdout
        fields = iter(out.split("\0"))
        paths: list[str] = []
        for status in fields:
            if not status:
                continue
            count = 2 if status.startswith(("R", "C")) else 1
            paths.extend(next(fields, "") for _ in range(count))
        return [path for path in paths if path]

    def tracked_files(self, rev: str = "HEAD") -> list[str]:
        """Every file tracked at *rev* (falls back to the index for an unborn HEAD)."""
        if self.rev_exists(rev):
            out = self._run_git("ls-tree", "-r", "-z", "--name-only", rev).stdout
        else:
            out = self._run_git("ls-files", "-z").stdout
        return [path for path in out.split("\0") if path]
