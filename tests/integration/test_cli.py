"""CLI tests via typer.testing.CliRunner."""

from __future__ import annotations

import yaml
from typer.testing import CliRunner

from helmsource.cli.app import app
from helmsource.core import conditions
from helmsource.models.conditions import ARTIFACT_IN_STORAGE_CONDITION

runner = CliRunner()


class TestCliApp:
    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("reconcile", "status", "gc"):
            assert command in result.output

    def test_missing_manifest_exits_nonzero(self, tmp_path):
        result = runner.invoke(app, ["status", str(tmp_path / "absent.yaml")])
        assert result.exit_code == 1


class TestStatusCommand:
    def test_shows_conditions(self, tmp_path, make_repository):
        obj = make_repository(finalizer=True)
        conditions.mark_true(obj, ARTIFACT_IN_STORAGE_CONDITION, "Succeeded", "stored artifact")
        manifest = tmp_path / "repo.yaml"
        manifest.write_text(yaml.safe_dump(obj.to_manifest()), encoding="utf-8")

        result = runner.invoke(app, ["status", str(manifest)])

        assert result.exit_code == 0
        assert "default/podinfo" in result.output
        assert "ArtifactInStorage" in result.output
