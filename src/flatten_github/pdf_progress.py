"""Merge PDF rendering and disk-write progress into one progress bar."""

from __future__ import annotations

from enum import StrEnum, auto
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from flatten_github.models import ProgressState, ProgressUpdate, StageState

if TYPE_CHECKING:
    from flatten_github.progress import ProgressSink


class PdfProgressStage(StrEnum):
    RENDER = auto()
    WRITE = auto()


STATUS_TEXT: dict[PdfProgressStage, str] = {
    PdfProgressStage.RENDER: "rendering pages",
    PdfProgressStage.WRITE: "writing to disk",
}


class PdfStageReport(BaseModel):
    """Progress of one stage as reported by the renderer or the writer."""

    model_config = ConfigDict(frozen=True)

    stage: PdfProgressStage
    processed: int
    total: int


class PdfProgressReporter:
    """Project the render and write stages onto a single `(processed, total)` pair.

    Each stage keeps its own `processed`/`total`, clamped on every report; a report
    carrying a new total re-baselines that stage (an estimate replaced by an exact
    count). The published total is the sum of stage totals, but never lower than
    the work already done and never zero.
    """

    def __init__(self, sink: ProgressSink) -> None:
        self.sink = sink
        self.stages: dict[PdfProgressStage, StageState] = {stage: StageState() for stage in PdfProgressStage}
        self.current_stage = PdfProgressStage.RENDER
        self.started = False

    def initialise(self, render_total: int, write_total: int = 0) -> None:
        self.stages = {
            PdfProgressStage.RENDER: StageState(total=max(render_total, 0)),
            PdfProgressStage.WRITE: StageState(total=max(write_total, 0)),
        }
        self.current_stage = PdfProgressStage.RENDER
        self.started = True
        self.sink.start(self.aggregate_total(), "Generating PDF")
        self._publish()

    def report(self, event: PdfStageReport) -> None:
        if not self.started:
            self.initialise(render_total=event.total, write_total=0)
        total = max(event.total, 0)
        self.stages[event.stage] = StageState(processed=min(max(event.processed, 0), total), total=total)
        self.current_stage = event.stage
        self._publish()

    def complete(self) -> None:
        """Mark both stages done, publish the final event and close the sink."""
        if not self.started:
            return
        for state in self.stages.values():
            state.processed = state.total
        self._publish()
        self.sink.finish()
        self.started = False

    def aggregate_processed(self) -> int:
        return sum(state.processed for state in self.stages.values())

    def aggregate_total(self) -> int:
        total = sum(state.total for state in self.stages.values())
        return max(total, self.aggregate_processed(), 1)

    def _publish(self) -> None:
        self.sink.update(
            ProgressUpdate(
                processed=self.aggregate_processed(),
                total=self.aggregate_total(),
                path=self.current_stage.value,
                state=ProgressState.INCLUDED,
                status_text=STATUS_TEXT[self.current_stage],
            ),
        )
