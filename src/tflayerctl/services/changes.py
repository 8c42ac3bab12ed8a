"""ChangesService — which layers and modules a revision range touched."""

from __future__ import annotations

from pathlib import Path

import structlog

from tflayerctl.domain.changeset import ChangeSet, attribute_changes
from tflayerctl.domain.types import ForceReason
from tflayerctl.infrastructure.git import GitError, GitRepository
from tflayerctl.services.base import BaseService
from tflayerctl.services.result import ServiceResult, failure
from tflayerctl.services.telemetry import trace_span, traced

log = structlog.get_logger(__name__)


class ChangesService(BaseService):
    """Resolves a :class:`ChangeSet` from git history."""

    def change_set(self, base: str | None, head: str = "HEAD") -> tuple[ChangeSet, list[str]]:
        """Compute the change set for ``base..head``.

        A *base* that does not resolve to a commit (first commit, shallow
        clone, or None) falls back to every tracked file at *head*, with
        the set forced and a warning attached.

        Raises:
            GitError: The root is not a repository, git is missing, or
                *head* does not exist.
        """
        repo = GitRepository(self.root)
        if not repo.is_repository():
            raise GitError(("rev-parse",), f"{self.root} is not a git repository")

        warnings: list[str] = []
        forced_reason: ForceReason | None = None
        with trace_span("git_diff", base=base, head=head):
            if base and repo.rev_exists(base):
                paths = repo.changed_files(base, head)
            else:
                label = base or "(none)"
                warnings.append(
                    f"Base revision {label} not found; treating every tracked file as changed"
                )
                forced_reason = ForceReason.BASE_MISSING
                paths = repo.tracked_files(head)

        change_set, attribution_warnings = attribute_changes(
            paths,
            graph=self.graph,
            environments=self.settings.environments.names,
            roots=self.settings.paths.source_roots(),
            forced_reason=forced_reason,
        )
        warnings.extend(attribution_warnings)
        log.debug(
            "changes.resolved",
            base=base,
            head=head,
            files=change_set.files,
            layers=sorted(change_set.layers),
            forced=change_set.forced,
        )
        return change_set, warnings

    @traced
    def resolve(
        self,
        base: str | None,
        head: str = "HEAD",
        *,
        github_output: Path | None = None,
    ) -> ServiceResult:
        """Resolve ``base..head`` into a change set result.

        With *github_output*, the ``layers``/``modules``/``affects_all``/
        ``has_changes`` lines are appended to that file.
        """
        try:
            change_set, warnings = self.change_set(base, head)
        except GitError as exc:
            return failure("changes", "GIT_ERROR", str(exc), detail={"base": base, "head": head})

        if github_output is not None:
            lines = change_set.github_output_lines(self.graph)
            with github_output.open("a", encoding="utf-8") as fh:
                fh.write("\n".join(lines) + "\n")

        data = change_set.to_data(self.graph)
        data["base"] = base
        data["head"] = head
        return ServiceResult(ok=True, op="changes", data=data, warnings=warnings)
