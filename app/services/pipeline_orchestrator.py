"""
app/services/pipeline_orchestrator.py

Generic landscape pipeline orchestrator.

Wires PrimaryRegistryClient -> LocalNameTranslator -> SecondaryRegistryClient
-> ResultCalculator into one cancellable run:

    uploading    (2%)      source rows accepted
    enriching    (10-52%)  rows enriched in batches of `batch_size`, batches
                           paced by `batch_delay_seconds`
    matching     (52-96%)  rows matched sequentially against the secondary
                           registry
    calculating            summary metrics recomputed from scratch
    done         (100%)    outputs published on the run

Failure contract
----------------
- No source rows / duplicate sequences / unknown count mode -> run ends in ``error``
  with one message
- Cancellation (explicit or by a newer run) -> ``cancelled``, nothing published
- Per-row registry failures never reach this layer; they surface as REVIEW
  confidence, ``not_found`` rows or validation-error strings
- Any other exception -> ``error`` with the exception text, logged with traceback

Only one run is current at a time. Starting a run cancels the previous one.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timezone
from functools import lru_cache
from typing import Sequence

import httpx

from app.cancellation import CancellationToken, PipelineCancelledError, checkpoint, gather_or_cancel, pace
from app.config import (
    ExternalHTTPSettings,
    PrimaryRegistrySettings,
    SecondaryRegistrySettings,
    get_external_http_settings,
    get_pipeline_settings,
    get_primary_registry_settings,
    get_secondary_registry_settings,
)
from app.connectors import PrimaryRegistryClient, SecondaryRegistryClient, TermLookup, build_http_client
from app.domain.drug_records import CountMode, EnrichmentRecord, SourceRecord, build_summary_metrics
from app.domain.pipeline_run import PipelineRun, RunStatus
from app.logging_utils import log_event
from app.lookup_cache import LookupCache
from app.services.result_calculator import ProgressCallback, ResultCalculator
from app.translation import LocalNameTranslator, load_local_name_dictionary

logger = logging.getLogger(__name__)

HTTPClientFactory = Callable[[], httpx.AsyncClient]


class PipelineInputError(ValueError):
    """
    Raised when a run has nothing to process or was started with invalid options.
    """


class PipelineOrchestrator:
    """
    Owns the current run, its cancellation token and both registry caches.
    """

    def __init__(
        self,
        *,
        translator: LocalNameTranslator | None = None,
        client_factory: HTTPClientFactory | None = None,
        http_settings: ExternalHTTPSettings | None = None,
        primary_settings: PrimaryRegistrySettings | None = None,
        secondary_settings: SecondaryRegistrySettings | None = None,
        primary_cache: LookupCache[str, EnrichmentRecord] | None = None,
        secondary_cache: LookupCache[tuple[str, bool], TermLookup] | None = None,
    ) -> None:
        self._http_settings = http_settings or get_external_http_settings()
        self._primary_settings = primary_settings or get_primary_registry_settings()
        self._secondary_settings = secondary_settings or get_secondary_registry_settings()
        if translator is None:
            dictionary = load_local_name_dictionary(get_pipeline_settings().local_names_path)
            translator = LocalNameTranslator(dictionary)
        self._translator = translator
        self._client_factory = client_factory or (lambda: build_http_client(self._http_settings))

        self.primary_cache: LookupCache[str, EnrichmentRecord] = (
            primary_cache if primary_cache is not None else LookupCache("primary_registry")
        )
        self.secondary_cache: LookupCache[tuple[str, bool], TermLookup] = (
            secondary_cache if secondary_cache is not None else LookupCache("secondary_registry")
        )
        self._current_run = PipelineRun()
        self._tokens: dict[str, CancellationToken] = {}

    @property
    def current_run(self) -> PipelineRun:
        return self._current_run

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def begin_run(self, *, count_mode: str, include_revoked: bool) -> PipelineRun:
        """
        Make a new run current, cancelling whatever run was current before.
        """

        self.cancel()
        run = PipelineRun(
            count_mode=count_mode,
            include_revoked=include_revoked,
            started_at=datetime.now(timezone.utc),
        )
        run.advance(RunStatus.UPLOADING, message="Source rows received")
        self._tokens[run.id] = CancellationToken()
        self._current_run = run
        return run

    def cancel(self) -> bool:
        """
        Signal the current run to stop at its next checkpoint.

        Returns:
            True when an active run was signalled.
        """

        run = self._current_run
        token = self._tokens.get(run.id)
        if token is None or token.cancelled or not run.is_active:
            return False
        token.cancel()
        run.message = "Cancelling"
        log_event(logger, logging.INFO, "pipeline_run_cancel_requested", run_id=run.id, status=run.status)
        return True

    def reset(self) -> PipelineRun:
        """
        Cancel any active run, clear both caches and return to an idle run.
        """

        self.cancel()
        self.primary_cache.clear()
        self.secondary_cache.clear()
        self._current_run = PipelineRun()
        log_event(logger, logging.INFO, "pipeline_reset")
        return self._current_run

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def run(
        self,
        source_records: Sequence[SourceRecord],
        *,
        count_mode: str = CountMode.INGREDIENT,
        include_revoked: bool = False,
        progress: ProgressCallback | None = None,
    ) -> PipelineRun:
        run = self.begin_run(count_mode=count_mode, include_revoked=include_revoked)
        return await self.execute(run, source_records, progress=progress)

    async def execute(
        self,
        run: PipelineRun,
        source_records: Sequence[SourceRecord],
        *,
        progress: ProgressCallback | None = None,
    ) -> PipelineRun:
        """
        Run every stage for a run created by `begin_run`.
        """

        return await self._execute(run, source_records=list(source_records), enrichments=None, progress=progress)

    def begin_rerun(self, *, count_mode: str, include_revoked: bool) -> PipelineRun:
        """
        Start a matching-only run; the secondary cache is cleared so corrected
        local names are not answered with stale empty results.
        """

        self.secondary_cache.clear()
        return self.begin_run(count_mode=count_mode, include_revoked=include_revoked)

    async def rerun_matching(
        self,
        enrichments: Sequence[EnrichmentRecord],
        *,
        count_mode: str = CountMode.INGREDIENT,
        include_revoked: bool = False,
        progress: ProgressCallback | None = None,
    ) -> PipelineRun:
        run = self.begin_rerun(count_mode=count_mode, include_revoked=include_revoked)
        return await self.execute_matching(run, enrichments, progress=progress)

    async def execute_matching(
        self,
        run: PipelineRun,
        enrichments: Sequence[EnrichmentRecord],
        *,
        source_records: Sequence[SourceRecord] = (),
        progress: ProgressCallback | None = None,
    ) -> PipelineRun:
        return await self._execute(
            run,
            source_records=list(source_records),
            enrichments=list(enrichments),
            progress=progress,
        )

    # ------------------------------------------------------------------
    # Internal: stages
    # ------------------------------------------------------------------

    async def _execute(
        self,
        run: PipelineRun,
        *,
        source_records: list[SourceRecord],
        enrichments: list[EnrichmentRecord] | None,
        progress: ProgressCallback | None,
    ) -> PipelineRun:
        token = self._tokens.setdefault(run.id, CancellationToken())
        run_start = time.monotonic()
        log_event(
            logger,
            logging.INFO,
            "pipeline_run_started",
            run_id=run.id,
            rows=len(enrichments) if enrichments is not None else len(source_records),
            count_mode=run.count_mode,
            include_revoked=run.include_revoked,
            matching_only=enrichments is not None,
        )

        try:
            if run.count_mode not in CountMode.ALL:
                raise PipelineInputError(
                    f"Unknown count_mode {run.count_mode!r}. Valid modes: {list(CountMode.ALL)}"
                )
            if enrichments is None and not source_records:
                raise PipelineInputError("No source rows to process.")
            if enrichments is not None and not enrichments:
                raise PipelineInputError("No enrichment records to re-match.")
            rows = enrichments if enrichments is not None else source_records
            sequence_counts = Counter(row.sequence for row in rows)
            duplicates = sorted(str(sequence) for sequence, count in sequence_counts.items() if count > 1)
            if duplicates:
                raise PipelineInputError(f"Duplicate row sequence values: {duplicates}")

            async with self._client_factory() as http_client:
                if enrichments is None:
                    primary = PrimaryRegistryClient(
                        http_client=http_client,
                        settings=self._primary_settings,
                        http_settings=self._http_settings,
                        translator=self._translator,
                        cache=self.primary_cache,
                    )
                    enrichments = await self._enrich_all(
                        primary,
                        source_records,
                        token=token,
                        report=self._reporter(run, RunStatus.ENRICHING, progress),
                    )
                    log_event(logger, logging.INFO, "pipeline_stage_completed", run_id=run.id, stage="enriching")

                secondary = SecondaryRegistryClient(
                    http_client=http_client,
                    settings=self._secondary_settings,
                    http_settings=self._http_settings,
                    cache=self.secondary_cache,
                )
                calculator = ResultCalculator(
                    registry=secondary,
                    translator=self._translator,
                    row_delay_seconds=self._secondary_settings.row_delay_seconds,
                )
                output = await calculator.compute(
                    enrichments,
                    run.count_mode,
                    run.include_revoked,
                    cancel_token=token,
                    progress=self._reporter(run, RunStatus.MATCHING, progress),
                )
                log_event(logger, logging.INFO, "pipeline_stage_completed", run_id=run.id, stage="matching")

            checkpoint(token)
            run.advance(RunStatus.CALCULATING, current=1, total=1, message="Calculating summary metrics")
            summary = build_summary_metrics(
                enrichments=enrichments,
                results=output.results,
                generic_items=output.generic_items,
                validation_errors=output.validation_errors,
            )

            run.source_records = source_records
            run.enrichments = enrichments
            run.results = output.results
            run.generic_items = output.generic_items
            run.compact_summaries = output.compact_summaries
            run.summary = summary
            run.finish(RunStatus.DONE, message="Completed", errors=output.validation_errors)
            log_event(
                logger,
                logging.INFO,
                "pipeline_run_completed",
                run_id=run.id,
                rows=summary.total_rows,
                not_found=summary.not_found_count,
                generic_items=summary.total_generic_item_rows,
                validation_errors=len(summary.validation_errors),
                primary_cache_size=len(self.primary_cache),
                secondary_cache_size=len(self.secondary_cache),
                elapsed_seconds=round(time.monotonic() - run_start, 3),
            )
        except PipelineCancelledError:
            run.finish(RunStatus.CANCELLED, message="Cancelled")
            log_event(logger, logging.INFO, "pipeline_run_cancelled", run_id=run.id)
        except PipelineInputError as exc:
            run.finish(RunStatus.ERROR, message=str(exc), errors=[str(exc)])
            log_event(logger, logging.WARNING, "pipeline_run_rejected", run_id=run.id, error=str(exc))
        except Exception as exc:
            error_message = f"{type(exc).__name__}: {exc}"
            logger.exception("Pipeline run failed id=%s error=%s", run.id, error_message)
            run.finish(RunStatus.ERROR, message=error_message, errors=[error_message])
        finally:
            self._tokens.pop(run.id, None)

        return run

    async def _enrich_all(
        self,
        client: PrimaryRegistryClient,
        source_records: list[SourceRecord],
        *,
        token: CancellationToken,
        report: ProgressCallback,
    ) -> list[EnrichmentRecord]:
        """
        Enrich rows in fixed-size concurrent batches, preserving input order.
        """

        total = len(source_records)
        batch_size = max(1, self._primary_settings.batch_size)
        enrichments: list[EnrichmentRecord] = []

        for start in range(0, total, batch_size):
            checkpoint(token)
            batch = source_records[start : start + batch_size]
            report(start, total, f"Enriching rows {start + 1}-{start + len(batch)} of {total}")
            enriched = await gather_or_cancel(client.enrich(record, cancel_token=token) for record in batch)
            enrichments.extend(enriched)
            if start + batch_size < total:
                await pace(token, self._primary_settings.batch_delay_seconds)

        report(total, total, "Enrichment complete")
        return enrichments

    def _reporter(
        self,
        run: PipelineRun,
        status: str,
        progress: ProgressCallback | None,
    ) -> ProgressCallback:
        def report(current: int, total: int, message: str) -> None:
            run.advance(status, current=current, total=total, message=message)
            if progress is not None:
                progress(current, total, message)

        return report


@lru_cache(maxsize=1)
def get_pipeline_orchestrator() -> PipelineOrchestrator:
    return PipelineOrchestrator()
