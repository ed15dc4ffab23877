"""
app/domain/pipeline_run.py

Process-wide state of one pipeline run.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from app.domain.drug_records import (
    CompactSummaryRecord,
    CountMode,
    EnrichmentRecord,
    GenericItemRecord,
    ResultRecord,
    SourceRecord,
    SummaryMetrics,
)


class RunStatus:
    IDLE = "idle"
    UPLOADING = "uploading"
    ENRICHING = "enriching"
    MATCHING = "matching"
    CALCULATING = "calculating"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"

    TERMINAL = frozenset({DONE, ERROR, CANCELLED})


# Overall percentage span owned by each stage.
STAGE_PROGRESS_SPANS: dict[str, tuple[int, int]] = {
    RunStatus.UPLOADING: (2, 10),
    RunStatus.ENRICHING: (10, 52),
    RunStatus.MATCHING: (52, 96),
    RunStatus.CALCULATING: (52, 96),
}


def stage_progress(status: str, current: int, total: int) -> int:
    """
    Map a sub-stage `(current, total)` position onto the 0-100 overall scale.
    """

    if status == RunStatus.DONE:
        return 100
    span = STAGE_PROGRESS_SPANS.get(status)
    if span is None:
        return 0
    start, end = span
    if total <= 0:
        return start
    fraction = min(1.0, max(0.0, current / total))
    return start + round(fraction * (end - start))


@dataclass
class PipelineRun:
    """
    Lifecycle and published outputs of one run.

    Outputs stay empty until the run reaches `done`.
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: str = RunStatus.IDLE
    progress: int = 0
    message: str = ""
    count_mode: str = CountMode.INGREDIENT
    include_revoked: bool = False
    source_records: list[SourceRecord] = field(default_factory=list)
    enrichments: list[EnrichmentRecord] = field(default_factory=list)
    results: list[ResultRecord] = field(default_factory=list)
    generic_items: list[GenericItemRecord] = field(default_factory=list)
    compact_summaries: list[CompactSummaryRecord] = field(default_factory=list)
    summary: SummaryMetrics = field(default_factory=SummaryMetrics)
    errors: list[str] = field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status not in RunStatus.TERMINAL and self.status != RunStatus.IDLE

    def advance(self, status: str, *, current: int = 0, total: int = 0, message: str = "") -> None:
        self.status = status
        self.progress = stage_progress(status, current, total)
        if message:
            self.message = message

    def finish(self, status: str, *, message: str = "", errors: list[str] | None = None) -> None:
        self.status = status
        if status == RunStatus.DONE:
            self.progress = 100
        if message:
            self.message = message
        if errors is not None:
            self.errors = list(errors)
        self.completed_at = datetime.now(timezone.utc)
