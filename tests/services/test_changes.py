"""Tests for ChangesService against real git history."""

from __future__ import annotations

from pathlib import Path

import pytest

from tests.conftest import commit_all, git
from tflayerctl.config.settings import LayerCtlSettings
from tflayerctl.services.changes import ChangesService

pytestmark = pytest.mark.slow


def service(root: Path) -> ChangesService:
    return ChangesService(LayerCtlSettings.from_cli(project_root=root))


class TestResolve:
    def test_single_layer_change(self, repo: Path) -> None:
        base = git(repo, "rev-parse", "HEAD")
        (repo / "layers" / "networking" / "main.tf").write_text("# edited\n")
        commit_all(repo, "edit networking")

        result = service(repo).resolve(base, "HEAD")
        assert result.ok
        assert result.data["layers"] == ["networking"]
        assert result.data["forced"] is False
        assert result.data["base"] == base
        assert result.data["head"] == "HEAD"
        assert result.warnings == []

    def test_non_ascii_file_name(self, repo: Path) -> None:
        base = git(repo, "rev-parse", "HEAD")
        (repo / "layers" / "dns" / "z\u00f6ne.tf").write_text("# zone\n")
        commit_all(repo, "add zone")

        assert service(repo).resolve(base).data["layers"] == ["dns"]

    def test_env_var_file_change(self, repo: Path) -> None:
        base = git(repo, "rev-parse", "HEAD")
        (repo / "environments" / "uat" / "compute.tfvars").write_text('environment = "uat"\n')
        commit_all(repo, "tune compute")

        assert service(repo).resolve(base).data["layers"] == ["compute"]

    def test_workflow_change_forces_all(self, repo: Path) -> None:
        base = git(repo, "rev-parse", "HEAD")
        (repo / ".github" / "workflows" / "terraform-plan.yml").write_text("name: changed\n")
        commit_all(repo, "ci")

        data = service(repo).resolve(base).data
        assert data["forced"] is True
        assert data["reason"] == "workflows_changed"
        assert data["layers"] == [
            "networking",
            "security",
            "storage",
            "database",
            "compute",
            "monitoring",
            "dns",
        ]

    def test_module_change(self, repo: Path) -> None:
        base = git(repo, "rev-parse", "HEAD")
        (repo / "modules" / "vnet" / "main.tf").write_text("# v2\n")
        commit_all(repo, "module")

        data = service(repo).resolve(base).data
        assert data["modules"] == ["vnet"]
        assert data["layers"] == []

    def test_missing_base_falls_back(self, repo: Path) -> None:
        result = service(repo).resolve("0123456789abcdef0123456789abcdef01234567")
        assert result.ok
        assert result.data["forced"] is True
        assert result.data["reason"] == "base_missing"
        assert len(result.data["layers"]) == 7
        assert result.warnings and "not found" in result.warnings[0]

    def test_no_base_falls_back(self, repo: Path) -> None:
        result = service(repo).resolve(None)
        assert result.data["reason"] == "base_missing"

    def test_unknown_layer_warning(self, repo: Path) -> None:
        base = git(repo, "rev-parse", "HEAD")
        (repo / "layers" / "frontend").mkdir()
        (repo / "layers" / "frontend" / "main.tf").write_text("")
        commit_all(repo, "frontend")

        result = service(repo).resolve(base)
        assert result.data["layers"] == []
        assert result.warnings == ["Ignoring changes under unknown layer directory 'frontend'"]

    def test_github_output(self, repo: Path, tmp_path_factory: pytest.TempPathFactory) -> None:
        base = git(repo, "rev-parse", "HEAD")
        (repo / "layers" / "dns" / "main.tf").write_text("# dns\n")
        commit_all(repo, "dns")
        out = tmp_path_factory.mktemp("gh") / "output"
        out.write_text("existing=1\n")

        service(repo).resolve(base, github_output=out)
        assert out.read_text().splitlines() == [
            "existing=1",
            'layers=["dns"]',
            "modules=[]",
            "affects_all=false",
            "has_changes=true",
        ]

    def test_not_a_repository(self, project_root: Path) -> None:
        result = service(project_root).resolve("HEAD~1")
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "GIT_ERROR"
