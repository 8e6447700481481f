"""Tests for the aicommit command line."""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from aicommit import __version__
from aicommit.cli import load_config, main
from aicommit.conflict.pipeline import (
    ResolutionOutcome,
    ResolutionStrategyName,
    ResolveAllResult,
)
from aicommit.errors import AllProvidersFailedError
from aicommit.workflow import WorkflowResult


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in (
        "AICOMMIT_PROVIDER", "AICOMMIT_PARALLEL", "AICOMMIT_DISABLE_LLM", "AICOMMIT_CALL_TIMEOUT",
        "GROQ_API_KEY", "OPENROUTER_API_KEY", "OLLAMA_HOST", "OLLAMA_MODEL",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config_path(tmp_path):
    return str(tmp_path / "config.yaml")


def make_workflow():
    workflow = Mock()
    workflow.orchestrator.providers = {}
    workflow.repo.staged_diff.return_value = "diff --git a/x b/x\n"
    workflow.generate_messages = AsyncMock(return_value=["feat: add x", "fix: x"])
    workflow.commit_changes = AsyncMock(return_value=("feat: add x", "0123456789abcdef"))
    workflow.run = AsyncMock(return_value=WorkflowResult(committed=True, commit_sha="0123456789", message="feat: x"))
    return workflow


def run_cli(argv, workflow=None):
    """Run main() with build_workflow patched; return the exit code."""
    with patch("aicommit.cli.build_workflow", return_value=workflow or make_workflow()):
        try:
            main(argv)
        except SystemExit as e:
            return e.code
    return 0


class TestMain:

    def test_no_command_prints_help(self, capsys):
        assert run_cli([]) == 1
        assert "usage: aicommit" in capsys.readouterr().out

    def test_version(self, capsys):
        assert run_cli(["--version"]) == 0
        assert __version__ in capsys.readouterr().out


class TestGenerate:

    def test_prints_numbered_candidates(self, capsys):
        assert run_cli(["generate"]) == 0
        assert capsys.readouterr().out == "1. feat: add x\n2. fix: x\n"

    def test_nothing_staged(self, capsys):
        workflow = make_workflow()
        workflow.repo.staged_diff.return_value = ""

        assert run_cli(["generate"], workflow) == 1
        assert "No staged changes" in capsys.readouterr().out

    def test_all_providers_failed(self, capsys):
        workflow = make_workflow()
        workflow.generate_messages = AsyncMock(side_effect=AllProvidersFailedError([]))

        assert run_cli(["generate"], workflow) == 1
        assert "All AI providers failed" in capsys.readouterr().out


class TestCommit:

    def test_prints_short_sha(self, capsys):
        assert run_cli(["commit"]) == 0
        assert "✓ [01234567] feat: add x" in capsys.readouterr().out

    def test_nothing_committed(self):
        workflow = make_workflow()
        workflow.commit_changes = AsyncMock(return_value=None)
        assert run_cli(["commit"], workflow) == 1


class TestAuto:

    def test_flags_passed_through(self):
        workflow = make_workflow()
        assert run_cli(["auto", "--no-push"], workflow) == 0
        workflow.run.assert_awaited_once_with(push=False, pull=True)

    def test_errors_exit_nonzero(self, capsys):
        workflow = make_workflow()
        workflow.run = AsyncMock(return_value=WorkflowResult(errors=["git push failed: rejected"]))

        assert run_cli(["auto"], workflow) == 1
        assert "✗ git push failed: rejected" in capsys.readouterr().out


class TestResolve:

    def make_resolving_workflow(self, *outcomes):
        workflow = make_workflow()
        resolved = sum(1 for o in outcomes if o.success)
        workflow.pipeline.resolve_all = AsyncMock(return_value=ResolveAllResult(
            total_files=len(outcomes),
            resolved_count=resolved,
            escalated_count=len(outcomes) - resolved,
            failed_count=0,
            outcomes=list(outcomes),
        ))
        workflow.repo.conflicted_paths.return_value = [o.file_path for o in outcomes]
        return workflow

    def test_no_conflicts(self, capsys):
        workflow = make_workflow()
        workflow.repo.conflicted_paths.return_value = []

        assert run_cli(["resolve"], workflow) == 0
        assert "No git conflicts detected." in capsys.readouterr().out

    def test_all_resolved_and_staged(self, capsys):
        workflow = self.make_resolving_workflow(ResolutionOutcome(
            file_path="a.py", strategy_used=ResolutionStrategyName.HEURISTIC,
            still_conflicted=False, rule="declarations",
        ))

        assert run_cli(["resolve"], workflow) == 0
        assert "✓ a.py (heuristic: declarations)" in capsys.readouterr().out
        workflow.repo.stage.assert_called_once_with(["a.py"])

    def test_escalation_exit_code(self, capsys):
        workflow = self.make_resolving_workflow(
            ResolutionOutcome(file_path="logo.svg", detail="no heuristic for other files"),
        )

        assert run_cli(["resolve", "--no-stage", "logo.svg"], workflow) == 1
        assert "MANUAL DECISION REQUIRED: logo.svg" in capsys.readouterr().out
        workflow.pipeline.resolve_all.assert_awaited_once_with(["logo.svg"])
        workflow.repo.stage.assert_not_called()


class TestLoadConfig:

    def test_overrides_not_persisted(self, tmp_path, config_path):
        args = Mock(config=config_path, provider="groq", parallel=True, count=5, no_ai=True)
        config = load_config(args)

        assert config.preferred_provider == "groq"
        assert config.generation["parallel"] is True
        assert config.generation["count"] == 5
        assert config.llm_enabled is False
        assert not (tmp_path / "config.yaml").exists()

    def test_bad_config_exits(self, tmp_path, capsys):
        bad = tmp_path / "bad.yaml"
        bad.write_text("providers: [oops\n")
        args = Mock(config=str(bad), provider=None, parallel=False, count=None, no_ai=False)

        with pytest.raises(SystemExit) as exc_info:
            load_config(args)
        assert exc_info.value.code == 2


class TestProviders:

    def test_lists_in_order(self, config_path, capsys, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "gsk-test")
        assert run_cli(["--config", config_path, "--provider", "groq", "providers"]) == 0

        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == "Providers (in fallback order):"
        names = [line.split()[0] for line in lines[1:]]
        assert names[:3] == ["ollama", "groq", "openrouter"]
        groq = next(line for line in lines if line.split()[0] == "groq")
        assert "available" in groq and groq.endswith("(preferred)")
        openrouter = next(line for line in lines if line.split()[0] == "openrouter")
        assert "not configured" in openrouter
