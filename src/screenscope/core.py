"""Top-level entry points: ScreenAnalyzer and analyze_screenshots()."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from pydantic import ValidationError

from screenscope.ai.client import AsyncAIClient
from screenscope.ai.prompt_builder import (
    build_comparison_prompt,
    build_prompt,
    build_summary_prompt,
)
from screenscope.ai.response_parser import parse_analysis, parse_comparison, parse_summary
from screenscope.cache.keys import BytesFetcher, canonical_order, generate_checksums
from screenscope.cache.manager import AnalysisCache
from screenscope.cache.stats import CacheStats
from screenscope.concurrency.rate_limiter import RateLimitTracker
from screenscope.concurrency.single_flight import SingleFlight
from screenscope.config import defaults
from screenscope.config.hierarchy import load_config_hierarchy
from screenscope.errors.classifier import ErrorClassifier
from screenscope.errors.exceptions import InvalidRequestError, StorageError
from screenscope.errors.retry import RetryCallback, RetryOrchestrator, SleepFn
from screenscope.models.analysis import AppAnalysis
from screenscope.models.comparison import (
    AppComparison,
    AppComparisonItem,
    AppSummary,
    ComparedApp,
)
from screenscope.types import (
    AnalysisOutcome,
    BatchingInfo,
    CacheKey,
    CacheStatus,
    ChecksumRecord,
    FetchedItem,
    ItemRef,
    RateLimitStatus,
    RetryConfig,
    utcnow,
)
from screenscope.utils.image import ImageFetcher

logger = logging.getLogger(__name__)

ComputeFn = Callable[[list[FetchedItem]], Awaitable[dict[str, Any]]]
CacheStatusCallback = Callable[[CacheStatus], None]
ProgressCallback = Callable[[int], None]
BatchingCallback = Callable[[BatchingInfo], None]


class ScreenAnalyzer:
    """Cache-first screenshot analysis with retrying AI calls.

    Every collaborator is injected; ``from_config`` wires the defaults.
    """

    def __init__(
        self,
        ai_client: AsyncAIClient,
        fetcher: BytesFetcher,
        cache: AnalysisCache | None = None,
        rate_limiter: RateLimitTracker | None = None,
        retry_config: RetryConfig | None = None,
        timeout_ms: int | None = defaults.DEFAULT_TIMEOUT_MS,
        max_items: int = defaults.DEFAULT_MAX_ITEMS,
        model: str = defaults.DEFAULT_MODEL,
        max_tokens: int = defaults.DEFAULT_MAX_TOKENS,
        temperature: float = defaults.DEFAULT_TEMPERATURE,
        single_flight: bool = True,
        classifier: ErrorClassifier | None = None,
        sleep: SleepFn | None = None,
        summary_timeout_ms: int | None = defaults.DEFAULT_SUMMARY_TIMEOUT_MS,
        summary_max_tokens: int = defaults.DEFAULT_SUMMARY_MAX_TOKENS,
    ) -> None:
        self._ai_client = ai_client
        self._fetcher = fetcher
        self._cache = cache or AnalysisCache()
        self._rate_limiter = rate_limiter or RateLimitTracker()
        self._orchestrator = RetryOrchestrator(
            config=retry_config,
            rate_limiter=self._rate_limiter,
            classifier=classifier,
            sleep=sleep,
            timeout_ms=timeout_ms,
        )
        # Same limiter and retry policy, shorter deadline
        self._summary_orchestrator = RetryOrchestrator(
            config=retry_config,
            rate_limiter=self._rate_limiter,
            classifier=classifier,
            sleep=sleep,
            timeout_ms=summary_timeout_ms,
        )
        self._max_items = max_items
        self._model = model
        self._max_tokens = max_tokens
        self._summary_max_tokens = summary_max_tokens
        self._temperature = temperature
        self._flights: SingleFlight[tuple[dict[str, Any], int, str | None]] | None = (
            SingleFlight() if single_flight else None
        )

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> ScreenAnalyzer:
        """Build an analyzer from a resolved config dict."""
        if not config.get("api_key"):
            raise InvalidRequestError(
                "No API key configured (set OPENAI_API_KEY or api_key in screenscope.yaml)",
                user_message="The AI provider API key is not configured.",
            )

        default_wait_ms = int(config.get("rate_limit_default_ms", defaults.DEFAULT_RATE_LIMIT_MS))
        return cls(
            ai_client=AsyncAIClient(api_key=config["api_key"], base_url=config.get("base_url")),
            fetcher=ImageFetcher(
                timeout_s=float(config.get("fetch_timeout_s", defaults.DEFAULT_FETCH_TIMEOUT_S))
            ),
            cache=AnalysisCache.from_config(config),
            rate_limiter=RateLimitTracker(default_wait_ms=default_wait_ms),
            retry_config=RetryConfig(
                max_retries=config.get("max_retries", defaults.DEFAULT_MAX_RETRIES),
                initial_delay_ms=config.get("initial_delay_ms", defaults.DEFAULT_INITIAL_DELAY_MS),
                max_delay_ms=config.get("max_delay_ms", defaults.DEFAULT_MAX_DELAY_MS),
                backoff_multiplier=config.get(
                    "backoff_multiplier", defaults.DEFAULT_BACKOFF_MULTIPLIER
                ),
                jitter_factor=config.get("jitter_factor", defaults.DEFAULT_JITTER_FACTOR),
            ),
            timeout_ms=config.get("timeout_ms", defaults.DEFAULT_TIMEOUT_MS),
            max_items=int(config.get("max_items", defaults.DEFAULT_MAX_ITEMS)),
            model=config.get("model", defaults.DEFAULT_MODEL),
            max_tokens=int(config.get("max_tokens", defaults.DEFAULT_MAX_TOKENS)),
            temperature=float(config.get("temperature", defaults.DEFAULT_TEMPERATURE)),
            single_flight=bool(config.get("single_flight", defaults.DEFAULT_SINGLE_FLIGHT)),
            summary_timeout_ms=config.get(
                "summary_timeout_ms", defaults.DEFAULT_SUMMARY_TIMEOUT_MS
            ),
            summary_max_tokens=int(
                config.get("summary_max_tokens", defaults.DEFAULT_SUMMARY_MAX_TOKENS)
            ),
            classifier=ErrorClassifier(
                default_rate_limit_ms=default_wait_ms,
                unknown_retryable=bool(
                    config.get("retry_unknown_errors", defaults.DEFAULT_RETRY_UNKNOWN_ERRORS)
                ),
            ),
        )

    @property
    def cache(self) -> AnalysisCache:
        return self._cache

    @property
    def model(self) -> str:
        return self._model

    async def get_or_compute(
        self,
        entity_id: str,
        items: Sequence[ItemRef],
        compute: ComputeFn,
        force_refresh: bool = False,
        on_cache_status: CacheStatusCallback | None = None,
        on_retry: RetryCallback | None = None,
        on_progress: ProgressCallback | None = None,
        on_batching: BatchingCallback | None = None,
    ) -> AnalysisOutcome:
        """Return the cached result for ``items`` or compute and store a new one.

        The cache is always consulted before ``compute`` runs. Fetch failures
        and invalid requests are raised before any AI call; AI failures are
        raised as classified ``AIError`` after retries.
        ``on_batching`` learns how many of the items will be analyzed.
        """
        if not entity_id:
            raise InvalidRequestError("entity_id must not be empty")
        selected = self._select_items(items, on_batching)

        _emit(on_cache_status, CacheStatus.CHECKING)
        fetched = await generate_checksums(selected, self._fetcher, on_progress)
        records = [item.record for item in fetched]

        key, validation = self._cache.lookup(entity_id, records, force_refresh=force_refresh)
        if validation.is_valid and validation.cached_result is not None:
            _emit(on_cache_status, CacheStatus.HIT)
            return AnalysisOutcome(
                result=validation.cached_result,
                from_cache=True,
                cache_entry_id=validation.entry_id,
                cache_key=key,
            )

        _emit(on_cache_status, CacheStatus.MISS)

        async def _run() -> tuple[dict[str, Any], int, str | None]:
            return await self._compute_and_store(
                key, records, fetched, compute, on_cache_status, on_retry
            )

        coalesced = False
        if self._flights is not None and not force_refresh:
            (result, attempts, entry_id), coalesced = await self._flights.do(
                key.as_string(), _run
            )
            if coalesced:
                logger.info("Joined in-flight analysis for %s", entity_id)
        else:
            result, attempts, entry_id = await _run()

        return AnalysisOutcome(
            result=result,
            from_cache=False,
            cache_entry_id=entry_id,
            cache_key=key,
            invalidation_reason=validation.invalidation_reason,
            attempts=attempts,
            coalesced=coalesced,
        )

    async def analyze(
        self,
        entity_id: str,
        app_name: str | None,
        items: Sequence[ItemRef],
        force_refresh: bool = False,
        on_cache_status: CacheStatusCallback | None = None,
        on_retry: RetryCallback | None = None,
        on_progress: ProgressCallback | None = None,
        on_batching: BatchingCallback | None = None,
    ) -> AnalysisOutcome:
        """Analyze an app's screenshots, reusing a valid cached analysis."""

        async def _compute(fetched: list[FetchedItem]) -> dict[str, Any]:
            system_prompt, user_prompt = build_prompt(app_name, len(fetched))
            response = await self._ai_client.send_request(
                model=self._model,
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                images=fetched,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
            logger.debug(
                "Model %s used %d tokens (finish=%s)",
                response.model,
                response.token_usage.total_tokens,
                response.finish_reason,
            )
            analysis = parse_analysis(response.content)
            analysis.analyzed_at = utcnow().isoformat()
            analysis.screens_analyzed = len(fetched)
            return analysis.to_result()

        return await self.get_or_compute(
            entity_id,
            items,
            _compute,
            force_refresh=force_refresh,
            on_cache_status=on_cache_status,
            on_retry=on_retry,
            on_progress=on_progress,
            on_batching=on_batching,
        )

    async def compare(
        self,
        apps: Sequence[ComparedApp],
        on_retry: RetryCallback | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> AppComparison:
        """Compare two or three already analyzed apps side by side.

        The call shares the rate limiter and retry policy of ``analyze`` but
        is not cached: its inputs are analyses, not screenshots.
        """
        if not defaults.MIN_COMPARE_APPS <= len(apps) <= defaults.MAX_COMPARE_APPS:
            raise InvalidRequestError(
                f"Comparison requires {defaults.MIN_COMPARE_APPS}-"
                f"{defaults.MAX_COMPARE_APPS} apps, got {len(apps)}",
                user_message=(
                    f"Select {defaults.MIN_COMPARE_APPS} to {defaults.MAX_COMPARE_APPS} "
                    "analyzed apps to compare."
                ),
            )
        entity_ids = [app.entity_id for app in apps]
        if len(set(entity_ids)) != len(entity_ids):
            raise InvalidRequestError(f"Duplicate apps in comparison: {entity_ids}")

        items = [
            AppComparisonItem(
                app_id=app.entity_id,
                app_name=app.name,
                category=app.category,
                screenshot_count=_screenshot_count(app),
            )
            for app in apps
        ]
        system_prompt, user_prompt = build_comparison_prompt(
            [
                {
                    "entity_id": app.entity_id,
                    "name": app.name,
                    "category": app.category,
                    "screenshot_count": item.screenshot_count,
                    "analysis_json": json.dumps(app.analysis.to_result(), indent=2),
                }
                for app, item in zip(apps, items, strict=True)
            ]
        )
        _progress(on_progress, 10)

        async def _compute() -> AppComparison:
            response = await self._ai_client.send_request(
                model=self._model,
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
            return parse_comparison(response.content)

        comparison = await self._orchestrator.run(_compute, on_retry)
        _progress(on_progress, 80)

        comparison.id = comparison.id or f"cmp-{uuid.uuid4().hex[:16]}"
        comparison.compared_at = utcnow().isoformat()
        comparison.apps = items
        logger.info("Compared %d apps: %s", len(items), ", ".join(entity_ids))
        _progress(on_progress, 100)
        return comparison

    async def summarize(
        self,
        analysis: AppAnalysis | dict[str, Any],
        app_name: str | None = None,
        on_retry: RetryCallback | None = None,
    ) -> AppSummary:
        """Write a 2-3 sentence summary of one analysis."""
        if isinstance(analysis, dict):
            try:
                analysis = AppAnalysis.model_validate(analysis)
            except ValidationError as e:
                raise InvalidRequestError(f"Not a valid analysis: {e}") from e

        system_prompt, user_prompt = build_summary_prompt(
            json.dumps(analysis.to_result(), indent=2), app_name
        )

        async def _compute() -> AppSummary:
            response = await self._ai_client.send_request(
                model=self._model,
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                max_tokens=self._summary_max_tokens,
                temperature=self._temperature,
            )
            return parse_summary(response.content)

        summary = await self._summary_orchestrator.run(_compute, on_retry)
        summary.app_name = app_name
        summary.generated_at = utcnow().isoformat()
        return summary

    def get_rate_limit_status(self) -> RateLimitStatus:
        return self._rate_limiter.status()

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def invalidate(self, entity_id: str) -> int:
        return self._cache.invalidate(entity_id)

    async def close(self) -> None:
        await self._ai_client.close()
        close_fetcher = getattr(self._fetcher, "close", None)
        if close_fetcher is not None:
            await close_fetcher()
        self._cache.close()

    async def __aenter__(self) -> ScreenAnalyzer:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _select_items(
        self,
        items: Sequence[ItemRef],
        on_batching: BatchingCallback | None = None,
    ) -> list[ItemRef]:
        if not items:
            raise InvalidRequestError(
                "At least one screenshot is required",
                user_message="Please provide at least one screenshot to analyze.",
            )
        ordered = canonical_order(items)
        selected = ordered[: self._max_items]
        info = BatchingInfo(
            total_provided=len(ordered),
            analyzing=len(selected),
            was_truncated=len(selected) < len(ordered),
            max_allowed=self._max_items,
        )
        if info.was_truncated:
            logger.warning(
                "Received %d items, analyzing only the first %d",
                info.total_provided,
                info.analyzing,
            )
        if on_batching is not None:
            on_batching(info)
        return selected

    async def _compute_and_store(
        self,
        key: CacheKey,
        records: list[ChecksumRecord],
        fetched: list[FetchedItem],
        compute: ComputeFn,
        on_cache_status: CacheStatusCallback | None,
        on_retry: RetryCallback | None,
    ) -> tuple[dict[str, Any], int, str | None]:
        result, state = await self._orchestrator.run_with_state(
            lambda: compute(fetched), on_retry
        )

        if not self._cache.enabled:
            return result, state.attempt, None

        _emit(on_cache_status, CacheStatus.STORING)
        try:
            entry = self._cache.store(key, records, result)
        except StorageError as e:
            logger.warning("Failed to store analysis for %s: %s", key.entity_id, e)
            _emit(on_cache_status, CacheStatus.STORE_FAILED)
            return result, state.attempt, None

        _emit(on_cache_status, CacheStatus.STORED)
        return result, state.attempt, entry.id if entry else None


def _emit(callback: CacheStatusCallback | None, status: CacheStatus) -> None:
    if callback is not None:
        callback(status)


def _progress(callback: ProgressCallback | None, percent: int) -> None:
    if callback is not None:
        callback(percent)


def _screenshot_count(app: ComparedApp) -> int:
    if app.screenshot_count is not None:
        return app.screenshot_count
    return app.analysis.screens_analyzed or len(app.analysis.screens)


def as_items(references: Sequence[str | ItemRef]) -> list[ItemRef]:
    """Wrap plain URLs or paths as items ordered as given."""
    return [
        ref if isinstance(ref, ItemRef) else ItemRef(id=ref, url=ref, order=i)
        for i, ref in enumerate(references)
    ]


# ── Module-level convenience functions ──


def analyze_screenshots(
    entity_id: str,
    screenshots: Sequence[str | ItemRef],
    app_name: str | None = None,
    force_refresh: bool = False,
    **config_overrides: Any,
) -> AnalysisOutcome:
    """Analyze screenshots (sync wrapper)."""
    items = as_items(screenshots)
    config = load_config_hierarchy(**config_overrides)

    async def _run() -> AnalysisOutcome:
        async with ScreenAnalyzer.from_config(config) as analyzer:
            return await analyzer.analyze(
                entity_id, app_name, items, force_refresh=force_refresh
            )

    return asyncio.run(_run())


def compare_apps(apps: Sequence[ComparedApp], **config_overrides: Any) -> AppComparison:
    """Compare analyzed apps (sync wrapper)."""
    config = load_config_hierarchy(**config_overrides)

    async def _run() -> AppComparison:
        async with ScreenAnalyzer.from_config(config) as analyzer:
            return await analyzer.compare(apps)

    return asyncio.run(_run())
