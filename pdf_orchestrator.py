"""Coordinate extraction across every configured bank report.

Each source runs independently: a failure (exception or a None result) is
recorded and the remaining sources continue. Sources that failed, and
reference entities with no configured source, are then filled from the
reference dataset and tagged ``used_fallback``.
"""

from __future__ import annotations

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Mapping, Sequence

from pdf_logging import timed
from pdf_models import AggregateResult, ExtractionResult, SourceRules, Token
from pdf_pipeline import fetch_document_tokens, run_pipeline
from pdf_rules import ReferenceEntry, load_reference, load_rules_dir
from pdf_settings import settings

logger = logging.getLogger(__name__)

TokenSource = Callable[[SourceRules], Sequence[Token]]


@dataclass(frozen=True)
class CachedAggregate:
    data: AggregateResult
    timestamp: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.timestamp < self.ttl


@dataclass(frozen=True)
class SourceOutcome:
    entity_id: str
    result: ExtractionResult | None
    error: str | None = None


class MarketShareOrchestrator:
    def __init__(
        self,
        sources: Sequence[SourceRules],
        token_source: TokenSource = fetch_document_tokens,
        reference: Mapping[str, ReferenceEntry] | None = None,
        parallel: bool = False,
        max_workers: int | None = None,
        ttl_seconds: float | None = None,
        use_fallback: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sources = list(sources)
        self._token_source = token_source
        self._reference = dict(reference or {})
        self._parallel = parallel
        self._max_workers = max_workers or settings.MAX_WORKERS
        self._ttl = float(settings.CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds)
        self._use_fallback = use_fallback
        self._clock = clock
        self._cache: CachedAggregate | None = None

    @classmethod
    def from_settings(cls, **kwargs) -> MarketShareOrchestrator:
        kwargs.setdefault("parallel", settings.PARALLEL_EXTRACTION)
        return cls(
            load_rules_dir(settings.RULES_DIR),
            reference=load_reference(settings.REFERENCE_PATH),
            **kwargs,
        )

    # -- lifecycle ---------------------------------------------------------

    def init(self, snapshot_path: str | Path | None = None) -> bool:
        """Seed the cache from a JSON snapshot. Returns True if one was loaded."""
        if snapshot_path is None:
            return False
        path = Path(snapshot_path)
        if not path.exists():
            logger.info("no snapshot at %s", path)
            return False
        try:
            with path.open("r", encoding="utf-8") as f:
                data = AggregateResult.from_dict(json.load(f))
        except (OSError, ValueError, KeyError) as e:
            logger.warning("ignoring unreadable snapshot %s: %s", path, e)
            return False
        # A snapshot is as old as its newest result, or the file itself when empty.
        stamps = [r.extracted_at.timestamp() for r in data.results]
        taken = max(stamps) if stamps else path.stat().st_mtime
        self._cache = CachedAggregate(data=data, timestamp=taken, ttl=self._ttl)
        logger.info("loaded %d results from snapshot %s", data.total_count, path)
        return True

    def get(self, force_refresh: bool = False) -> AggregateResult:
        now = self._clock()
        if not force_refresh and self._cache is not None and self._cache.is_fresh(now):
            logger.debug("using cached aggregate")
            return self._cache.data

        data = self.run()
        self._cache = CachedAggregate(data=data, timestamp=now, ttl=self._ttl)
        return data

    def invalidate(self) -> None:
        self._cache = None
        logger.info("aggregate cache cleared")

    def save_snapshot(self, path: str | Path, data: AggregateResult | None = None) -> Path:
        data = data or self.get()
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(data.to_dict(), f, indent=2)
        logger.info("saved %d results to %s", data.total_count, path)
        return path

    # -- extraction --------------------------------------------------------

    def _run_source(self, rules: SourceRules) -> SourceOutcome:
        try:
            with timed(logger, "extract", entity=rules.entity_id):
                tokens = self._token_source(rules)
                result = run_pipeline(tokens, rules)
        except Exception as e:
            logger.warning("%s: extraction failed: %s", rules.entity_id, e)
            return SourceOutcome(entity_id=rules.entity_id, result=None, error=str(e) or type(e).__name__)

        if result is None:
            return SourceOutcome(entity_id=rules.entity_id, result=None, error="no total found")
        return SourceOutcome(entity_id=rules.entity_id, result=result)

    def _run_all(self) -> list[SourceOutcome]:
        if self._parallel and len(self._sources) > 1:
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                return list(pool.map(self._run_source, self._sources))
        return [self._run_source(rules) for rules in self._sources]

    def run(self) -> AggregateResult:
        logger.info(
            "extracting %d sources (%s)",
            len(self._sources),
            "parallel" if self._parallel else "sequential",
        )
        outcomes = self._run_all()

        aggregate = AggregateResult()
        for outcome in outcomes:
            if outcome.result is not None:
                aggregate.results.append(outcome.result)
            else:
                aggregate.errors[outcome.entity_id] = outcome.error or "unknown error"
        aggregate.extracted_count = len(aggregate.results)

        logger.info(
            "extracted %d sources, %d failed", aggregate.extracted_count, len(aggregate.errors)
        )

        if self._use_fallback:
            self._apply_fallback(aggregate)
        return aggregate

    def _apply_fallback(self, aggregate: AggregateResult) -> None:
        extracted = {r.entity_id for r in aggregate.results}
        at = datetime.now(timezone.utc)
        missing = [entry for entity_id, entry in self._reference.items() if entity_id not in extracted]
        for entry in missing:
            aggregate.results.append(entry.to_result(at))
        if missing:
            aggregate.used_fallback = True
            logger.info(
                "using reference data for %d entities: %s",
                len(missing),
                ", ".join(e.entity_id for e in missing),
            )
        no_reference = [e for e in aggregate.errors if e not in self._reference]
        if no_reference:
            logger.warning("no reference data for failed sources: %s", ", ".join(no_reference))
