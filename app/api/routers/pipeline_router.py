"""
Generic landscape pipeline endpoints.

Runs execute as background tasks on the event loop; clients poll
``GET /pipeline/runs/current`` for status and progress, then read the
published tables once the status is ``done``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, UploadFile, status

from app.api.dependencies import get_count_mode, get_csv_upload, get_include_revoked
from app.domain.pipeline_run import PipelineRun, RunStatus
from app.ingestion import SourceFileError, read_source_records
from app.schemas.pipeline import (
    CompactSummaryListResponse,
    CompactSummaryResponse,
    EnrichmentRowResponse,
    GenericItemListResponse,
    GenericItemResponse,
    ManualMappingRequest,
    PipelineCancelResponse,
    PipelineRunAcceptedResponse,
    PipelineRunStatusResponse,
    ResultListResponse,
    ResultRowResponse,
    ReviewQueueResponse,
    SummaryMetricsResponse,
)
from app.services.manual_mapping import apply_manual_mappings, review_records, unmapped_records
from app.services.pipeline_orchestrator import PipelineOrchestrator, get_pipeline_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pipeline", tags=["pipeline"])


def _accepted(run: PipelineRun, rows: int) -> PipelineRunAcceptedResponse:
    return PipelineRunAcceptedResponse(
        run_id=run.id,
        status=run.status,
        rows=rows,
        count_mode=run.count_mode,
        include_revoked=run.include_revoked,
        started_at=run.started_at,
    )


def _status(run: PipelineRun) -> PipelineRunStatusResponse:
    return PipelineRunStatusResponse(
        run_id=run.id,
        status=run.status,
        progress=run.progress,
        message=run.message,
        count_mode=run.count_mode,
        include_revoked=run.include_revoked,
        errors=list(run.errors),
        started_at=run.started_at,
        completed_at=run.completed_at,
        summary=SummaryMetricsResponse.model_validate(run.summary),
    )


@router.post(
    "/runs",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=PipelineRunAcceptedResponse,
)
async def start_pipeline_run(
    background_tasks: BackgroundTasks,
    file: UploadFile = Depends(get_csv_upload),
    count_mode: str = Depends(get_count_mode),
    include_revoked: bool = Depends(get_include_revoked),
    orchestrator: PipelineOrchestrator = Depends(get_pipeline_orchestrator),
) -> PipelineRunAcceptedResponse:
    try:
        content = await file.read()
    finally:
        await file.close()

    try:
        source_records = read_source_records(content)
    except SourceFileError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    run = orchestrator.begin_run(count_mode=count_mode, include_revoked=include_revoked)
    background_tasks.add_task(orchestrator.execute, run, source_records)
    logger.info("Pipeline run accepted id=%s rows=%s file=%s", run.id, len(source_records), file.filename)
    return _accepted(run, len(source_records))


@router.get("/runs/current", response_model=PipelineRunStatusResponse)
async def get_current_run(
    orchestrator: PipelineOrchestrator = Depends(get_pipeline_orchestrator),
) -> PipelineRunStatusResponse:
    return _status(orchestrator.current_run)


@router.get("/runs/current/results", response_model=ResultListResponse)
async def get_current_results(
    orchestrator: PipelineOrchestrator = Depends(get_pipeline_orchestrator),
) -> ResultListResponse:
    run = orchestrator.current_run
    return ResultListResponse(
        run_id=run.id,
        rows=[ResultRowResponse.model_validate(record) for record in run.results],
    )


@router.get("/runs/current/generic-items", response_model=GenericItemListResponse)
async def get_current_generic_items(
    orchestrator: PipelineOrchestrator = Depends(get_pipeline_orchestrator),
) -> GenericItemListResponse:
    run = orchestrator.current_run
    return GenericItemListResponse(
        run_id=run.id,
        rows=[GenericItemResponse.model_validate(record) for record in run.generic_items],
    )


@router.get("/runs/current/generic-compact", response_model=CompactSummaryListResponse)
async def get_current_generic_compact(
    orchestrator: PipelineOrchestrator = Depends(get_pipeline_orchestrator),
) -> CompactSummaryListResponse:
    run = orchestrator.current_run
    return CompactSummaryListResponse(
        run_id=run.id,
        rows=[CompactSummaryResponse.model_validate(record) for record in run.compact_summaries],
    )


@router.get("/runs/current/review-queue", response_model=ReviewQueueResponse)
async def get_current_review_queue(
    orchestrator: PipelineOrchestrator = Depends(get_pipeline_orchestrator),
) -> ReviewQueueResponse:
    run = orchestrator.current_run
    return ReviewQueueResponse(
        run_id=run.id,
        review=[EnrichmentRowResponse.model_validate(record) for record in review_records(run.enrichments)],
        unmapped=[EnrichmentRowResponse.model_validate(record) for record in unmapped_records(run.enrichments)],
        manual_review=[
            ResultRowResponse.model_validate(record) for record in run.results if record.needs_manual_review
        ],
    )


@router.post("/runs/current/cancel", response_model=PipelineCancelResponse)
async def cancel_current_run(
    orchestrator: PipelineOrchestrator = Depends(get_pipeline_orchestrator),
) -> PipelineCancelResponse:
    cancelled = orchestrator.cancel()
    run = orchestrator.current_run
    return PipelineCancelResponse(run_id=run.id, cancelled=cancelled, status=run.status)


@router.post("/reset", response_model=PipelineRunStatusResponse)
async def reset_pipeline(
    orchestrator: PipelineOrchestrator = Depends(get_pipeline_orchestrator),
) -> PipelineRunStatusResponse:
    return _status(orchestrator.reset())


@router.post(
    "/runs/current/manual-mappings",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=PipelineRunAcceptedResponse,
)
async def apply_current_manual_mappings(
    request: ManualMappingRequest,
    background_tasks: BackgroundTasks,
    orchestrator: PipelineOrchestrator = Depends(get_pipeline_orchestrator),
) -> PipelineRunAcceptedResponse:
    previous = orchestrator.current_run
    if previous.status != RunStatus.DONE or not previous.enrichments:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Manual mappings require a completed run.",
        )

    enrichments = apply_manual_mappings(previous.enrichments, request.mappings, force=request.force)
    run = orchestrator.begin_rerun(count_mode=previous.count_mode, include_revoked=previous.include_revoked)
    background_tasks.add_task(
        orchestrator.execute_matching,
        run,
        enrichments,
        source_records=previous.source_records,
    )
    return _accepted(run, len(enrichments))
