"""Tests for the flowcore command line."""

from __future__ import annotations

import pytest
import yaml
from typer.testing import CliRunner

import flowcore.cli.app as cli
from flowcore.llm.router import ModelRouter
from flowcore.llm.types import StreamDelta
from tests.mock_providers import MockProvider

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("FLOWCORE_LLM_MODEL", raising=False)
    monkeypatch.delenv("FLOWCORE_LLM_NAME", raising=False)
    return tmp_path


def _write_config(path, data):
    (path / "flowcore.yaml").write_text(yaml.safe_dump(data), encoding="utf-8")


def test_version():
    result = runner.invoke(cli.app, ["version"])
    assert result.exit_code == 0
    assert "flowcore v0.1.0" in result.output


class TestConfigCommands:
    def test_validate_defaults(self):
        result = runner.invoke(cli.app, ["config", "validate"])
        assert result.exit_code == 0
        assert "Config is valid." in result.output
        assert "using defaults" in result.output

    def test_validate_reports_problems(self, isolated):
        _write_config(isolated, {"inference": {"max_rounds": 0}})
        result = runner.invoke(cli.app, ["config", "validate"])
        assert result.exit_code == 1
        assert "max_rounds" in result.output

    def test_show(self, isolated):
        _write_config(isolated, {"llm": {"model": "qwen3", "name": "ollama"}})
        result = runner.invoke(cli.app, ["config", "show"])
        assert result.exit_code == 0
        assert "qwen3" in result.output


class TestModels:
    def test_lists_primary_and_named_models(self, isolated):
        _write_config(isolated, {
            "llm": {"name": "ollama", "model": "qwen3"},
            "models": {"mini": {"name": "openai", "model": "gpt-4o-mini"}},
        })
        result = runner.invoke(cli.app, ["models"])
        assert result.exit_code == 0
        assert "qwen3 *" in result.output
        assert "mini" in result.output

    def test_build_router_uses_config_entries(self):
        cfg = cli.load_config(cli_overrides={"llm.name": "ollama", "llm.model": "qwen3"})
        router = cli.build_router(cfg)
        assert router.model_ids == ["qwen3"]
        assert router.entry("qwen3").provider.name == "ollama"
        assert router.model_supports_tools("qwen3")


class TestCompressCommand:
    def test_prints_summary(self, isolated, monkeypatch):
        provider = MockProvider([[StreamDelta(content="Short "), StreamDelta(content="summary")]])

        def fake_router(cfg):
            router = ModelRouter()
            router.register_model("m", provider)
            return router

        monkeypatch.setattr(cli, "build_router", fake_router)
        transcript = isolated / "chat.yaml"
        transcript.write_text(
            yaml.safe_dump([
                {"role": "user", "content": "Plan a trip"},
                {"role": "assistant", "content": "Lisbon is nice."},
            ]),
            encoding="utf-8",
        )

        result = runner.invoke(cli.app, ["compress", str(transcript), "--title", "Trip"])

        assert result.exit_code == 0, result.output
        assert "Short summary" in result.output
        sent = provider.last_request.messages[-1].text
        assert sent.startswith("# Trip")
        assert "Lisbon is nice." in sent

    def test_missing_file(self, isolated):
        result = runner.invoke(cli.app, ["compress", str(isolated / "nope.yaml")])
        assert result.exit_code == 1
        assert "File not found" in result.output

    def test_unsupported_role(self, isolated):
        transcript = isolated / "chat.yaml"
        transcript.write_text(
            yaml.safe_dump([{"role": "system", "content": "Be brief."}]),
            encoding="utf-8",
        )
        result = runner.invoke(cli.app, ["compress", str(transcript)])
        assert result.exit_code == 1
        assert "Unsupported transcript record 0" in result.output


class TestLocalModels:
    def test_local_runtime_from_entry_point(self, monkeypatch):
        from tests.mock_providers import ScriptedRuntime

        loaded = []

        def fake_load(name, options):
            loaded.append((name, options))
            return ScriptedRuntime(["x"], [0])

        monkeypatch.setattr("flowcore.llm.providers.local.load_runtime", fake_load)
        cfg = cli.load_config(cli_overrides={
            "llm.name": "local",
            "llm.model": "tiny",
            "llm.extra": {"path": "/models/tiny"},
        })
        assert cfg.validate() == []
        router = cli.build_router(cfg)
        assert router.entry("tiny").provider.name == "local"
        assert loaded == [("tiny", {"path": "/models/tiny"})]

    def test_missing_runtime_exits(self, isolated, monkeypatch):
        monkeypatch.setattr("flowcore.llm.providers.local.entry_points", lambda group: [])
        _write_config(isolated, {"llm": {"name": "local", "model": "tiny"}})
        result = runner.invoke(cli.app, ["models"])
        assert result.exit_code == 1
        assert "No local runtime named 'tiny'" in result.output
