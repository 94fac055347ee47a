"""Integration test: disk cache with the analyzer across process restarts."""

import json
from unittest.mock import AsyncMock

from fakes import FakeFetcher
from screenscope.cache.disk import SqliteCacheStore
from screenscope.cache.manager import AnalysisCache
from screenscope.core import ScreenAnalyzer, as_items
from screenscope.types import AIResponse, InvalidationReason, TokenUsage


def _mock_ai_client(content: str) -> AsyncMock:
    client = AsyncMock()
    client.send_request = AsyncMock(
        return_value=AIResponse(
            content=content,
            model="gpt-4.1-mini",
            token_usage=TokenUsage(prompt_tokens=100, completion_tokens=50, total_tokens=150),
        )
    )
    return client


def _analyzer(db_path, client, blobs) -> ScreenAnalyzer:
    cache = AnalysisCache(store=SqliteCacheStore(db_path))
    return ScreenAnalyzer(ai_client=client, fetcher=FakeFetcher(blobs), cache=cache)


class TestDiskCacheWithAnalyzer:
    async def test_hit_survives_restart(self, tmp_path, sample_image_bytes, analysis_payload):
        """A result stored by one analyzer is served to the next one."""
        db_path = tmp_path / "cache.db"
        blobs = {"home.png": sample_image_bytes, "list.png": b"list-screen"}
        client = _mock_ai_client(json.dumps(analysis_payload))

        async with _analyzer(db_path, client, blobs) as first:
            miss = await first.analyze("app-1", "Acme", as_items(["home.png", "list.png"]))
        assert miss.from_cache is False
        assert client.send_request.call_count == 1

        async with _analyzer(db_path, client, blobs) as second:
            hit = await second.analyze("app-1", "Acme", as_items(["home.png", "list.png"]))
        assert hit.from_cache is True
        assert hit.result == miss.result
        assert client.send_request.call_count == 1

    async def test_changed_screenshot_recomputes(self, tmp_path, analysis_payload):
        db_path = tmp_path / "cache.db"
        blobs = {"home.png": b"v1"}
        client = _mock_ai_client(json.dumps(analysis_payload))

        async with _analyzer(db_path, client, blobs) as analyzer:
            await analyzer.analyze("app-1", None, as_items(["home.png"]))

        blobs["home.png"] = b"v2"
        async with _analyzer(db_path, client, blobs) as analyzer:
            outcome = await analyzer.analyze("app-1", None, as_items(["home.png"]))

        assert outcome.invalidation_reason == InvalidationReason.CHECKSUM_MISMATCH
        assert client.send_request.call_count == 2
