"""Tests for CLI commands."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from click.testing import CliRunner

from fakes import FakeFetcher, record
from screenscope.cache.disk import SqliteCacheStore
from screenscope.cli import cli
from screenscope.core import ScreenAnalyzer
from screenscope.types import AIResponse, CacheEntry


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def cache_db(isolated_env, tmp_path, monkeypatch):
    path = tmp_path / "cache.db"
    monkeypatch.setenv("SCREENSCOPE_CACHE_DB_PATH", str(path))
    return path


class TestCLIGroup:
    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "screenscope" in result.output
        assert "analyze" in result.output
        assert "compare" in result.output
        assert "summarize" in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0


class TestAnalyzeCommand:
    def test_help(self, runner):
        result = runner.invoke(cli, ["analyze", "--help"])
        assert result.exit_code == 0
        assert "--force-refresh" in result.output
        assert "--no-cache" in result.output
        assert "--output" in result.output

    def test_missing_screenshots(self, runner):
        result = runner.invoke(cli, ["analyze", "app-1"])
        assert result.exit_code != 0

    def test_missing_api_key(self, runner, isolated_env):
        result = runner.invoke(cli, ["analyze", "app-1", "shot.png"])
        assert result.exit_code == 1
        assert "API key is not configured" in result.output

    def test_writes_output(self, runner, cache_db, monkeypatch, analysis_payload):
        ai = MagicMock()
        ai.send_request = AsyncMock(
            return_value=AIResponse(content=json.dumps(analysis_payload), model="m")
        )
        ai.close = AsyncMock()
        seen = {}

        def _from_config(config):
            seen.update(config)
            return ScreenAnalyzer(ai_client=ai, fetcher=FakeFetcher({"shot.png": b"png"}))

        monkeypatch.setattr(ScreenAnalyzer, "from_config", staticmethod(_from_config))

        result = runner.invoke(
            cli, ["analyze", "app-1", "shot.png", "--app-name", "Acme", "-o", "out.json"]
        )

        assert result.exit_code == 0, result.output
        written = json.loads((cache_db.parent / "work" / "out.json").read_text())
        assert written["overallStyle"] == "Minimal"
        assert written["screensAnalyzed"] == 1
        assert seen["cache_backend"] == "disk"

    def test_no_cache_flag(self, runner, isolated_env, monkeypatch):
        seen = {}

        def _from_config(config):
            seen.update(config)
            raise RuntimeError("stop")

        monkeypatch.setattr(ScreenAnalyzer, "from_config", staticmethod(_from_config))
        runner.invoke(cli, ["analyze", "app-1", "shot.png", "--no-cache"])
        assert seen["cache_backend"] == "none"

    def test_reports_truncation(self, runner, isolated_env, monkeypatch, analysis_payload):
        ai = MagicMock()
        ai.send_request = AsyncMock(
            return_value=AIResponse(content=json.dumps(analysis_payload), model="m")
        )
        ai.close = AsyncMock()
        fetcher = FakeFetcher({"a.png": b"a", "b.png": b"b"})
        monkeypatch.setattr(
            ScreenAnalyzer,
            "from_config",
            staticmethod(lambda config: ScreenAnalyzer(ai_client=ai, fetcher=fetcher, max_items=1)),
        )

        result = runner.invoke(cli, ["analyze", "app-1", "a.png", "b.png", "--no-cache"])

        assert result.exit_code == 0, result.output
        assert "Analyzing the first 1 of 2 screenshots (limit 1)" in result.output
        assert fetcher.calls == ["a.png"]


def _stub_analyzer(monkeypatch, content: str) -> MagicMock:
    ai = MagicMock()
    ai.send_request = AsyncMock(return_value=AIResponse(content=content, model="m"))
    ai.close = AsyncMock()
    monkeypatch.setattr(
        ScreenAnalyzer,
        "from_config",
        staticmethod(lambda config: ScreenAnalyzer(ai_client=ai, fetcher=FakeFetcher())),
    )
    return ai


class TestCompareCommand:
    def test_writes_comparison(
        self, runner, isolated_env, monkeypatch, analysis_payload, comparison_payload
    ):
        (isolated_env / "acme.json").write_text(json.dumps(analysis_payload))
        (isolated_env / "beta.json").write_text(json.dumps(analysis_payload))
        ai = _stub_analyzer(monkeypatch, json.dumps(comparison_payload))

        result = runner.invoke(cli, ["compare", "acme.json", "beta.json", "-o", "cmp.json"])

        assert result.exit_code == 0, result.output
        written = json.loads((isolated_env / "cmp.json").read_text())
        assert [a["appId"] for a in written["apps"]] == ["acme", "beta"]
        assert written["featureComparison"][0]["category"] == "core"
        ai.close.assert_awaited_once()

    def test_single_analysis_rejected(self, runner, isolated_env, monkeypatch, analysis_payload):
        (isolated_env / "acme.json").write_text(json.dumps(analysis_payload))
        ai = _stub_analyzer(monkeypatch, "{}")

        result = runner.invoke(cli, ["compare", "acme.json"])

        assert result.exit_code == 1
        assert "analyzed apps to compare" in result.output
        ai.send_request.assert_not_awaited()

    def test_invalid_analysis_file(self, runner, isolated_env, monkeypatch):
        (isolated_env / "acme.json").write_text("not json")
        (isolated_env / "beta.json").write_text("{}")
        _stub_analyzer(monkeypatch, "{}")

        result = runner.invoke(cli, ["compare", "acme.json", "beta.json"])

        assert result.exit_code != 0
        assert "not a valid analysis file" in result.output

    def test_missing_file(self, runner, isolated_env):
        result = runner.invoke(cli, ["compare", "nope.json", "other.json"])
        assert result.exit_code != 0


class TestSummarizeCommand:
    def test_prints_summary(self, runner, isolated_env, monkeypatch, analysis_payload):
        (isolated_env / "acme.json").write_text(json.dumps(analysis_payload))
        ai = _stub_analyzer(monkeypatch, "A calm app for [focused] readers.")

        result = runner.invoke(cli, ["summarize", "acme.json", "--app-name", "Acme"])

        assert result.exit_code == 0, result.output
        assert "A calm app for [focused] readers." in result.output
        assert 'analysis of "Acme"' in ai.send_request.call_args.kwargs["user_prompt"]

    def test_missing_api_key(self, runner, isolated_env, analysis_payload):
        (isolated_env / "acme.json").write_text(json.dumps(analysis_payload))
        result = runner.invoke(cli, ["summarize", "acme.json"])
        assert result.exit_code == 1
        assert "API key is not configured" in result.output


class TestCacheCommands:
    def test_cache_help(self, runner):
        result = runner.invoke(cli, ["cache", "--help"])
        assert result.exit_code == 0
        assert "stats" in result.output
        assert "clear" in result.output
        assert "invalidate" in result.output

    def test_stats(self, runner, cache_db):
        result = runner.invoke(cli, ["cache", "stats"])
        assert result.exit_code == 0
        assert "Cache Statistics" in result.output
        assert "Entries" in result.output

    def test_invalidate(self, runner, cache_db):
        store = SqliteCacheStore(cache_db)
        store.put(
            CacheEntry(
                id="cache-1",
                entity_id="app-1",
                combined_checksum="abc",
                item_checksums=[record("img1", "c1")],
                result={"overallStyle": "Minimal"},
            )
        )
        store.close()

        result = runner.invoke(cli, ["cache", "invalidate", "app-1"])

        assert result.exit_code == 0
        assert "Removed 1 entries" in result.output

    def test_clear(self, runner, cache_db):
        result = runner.invoke(cli, ["cache", "clear", "--yes"])
        assert result.exit_code == 0
        assert "Cache cleared" in result.output


class TestConfigCommand:
    def test_show_masks_key(self, runner, isolated_env, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-secret-value-1234")
        result = runner.invoke(cli, ["config", "show"])
        assert result.exit_code == 0
        assert "Configuration" in result.output
        assert "****1234" in result.output
        assert "sk-secret-value-1234" not in result.output
