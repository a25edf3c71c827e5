"""Per-run performance tracking.

A ``PipelineRun`` is opened when a top-level operation starts and closed
exactly once when it ends. Recording it is fire-and-forget: a storage
failure is logged and never reaches the caller.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from intake_ai.core.base_stage import StageResult, StageStatus
from intake_ai.repositories.base_repository import BaseRepository
from intake_ai.schemas.records import PipelineOutcome, PipelineRun
from intake_ai.utils.confidence import clamp_confidence
from intake_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_COST_PER_SERVICE_CALL = 5.0


@dataclass
class RunContext:
    """An open pipeline run."""
    module_name: str
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_monotonic: float = field(default_factory=time.perf_counter)

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started_monotonic) * 1000)


def determine_outcome(stages: Sequence[StageResult]) -> PipelineOutcome:
    """Aggregate stage statuses into a run outcome.

    Skipped stages are ignored. The run succeeds when every executed stage
    completed and fails when every executed stage failed; anything in
    between is partial.
    """
    executed = [stage for stage in stages if stage.status != StageStatus.SKIPPED]
    if all(stage.status == StageStatus.COMPLETED for stage in executed):
        return PipelineOutcome.SUCCESS
    if all(stage.status == StageStatus.FAILED for stage in executed):
        return PipelineOutcome.FAILED
    return PipelineOutcome.PARTIAL


class PerformanceTracker:
    """Builds and records PipelineRun values."""

    def __init__(
        self,
        repository: Optional[BaseRepository[PipelineRun]] = None,
        cost_per_service_call: float = DEFAULT_COST_PER_SERVICE_CALL,
    ):
        """Initialize the tracker.

        Args:
            repository: Run store; runs are only logged when omitted
            cost_per_service_call: Estimated cost units per external call
        """
        self.repository = repository
        self.cost_per_service_call = cost_per_service_call

    def start(self, module_name: str) -> RunContext:
        context = RunContext(module_name=module_name)
        LOGGER.debug(f"Started run {context.run_id} for {module_name}")
        return context

    def close(
        self,
        context: RunContext,
        stages: Sequence[StageResult],
        overall_confidence: float,
    ) -> PipelineRun:
        """Close a run. The returned PipelineRun is immutable.

        Args:
            context: Context returned by ``start``
            stages: Every stage result produced during the run
            overall_confidence: Aggregate confidence on the 0-100 scale
        """
        called = [stage for stage in stages if stage.called_service]
        models: List[str] = []
        for stage in called:
            if stage.model and stage.model not in models:
                models.append(stage.model)

        return PipelineRun(
            run_id=context.run_id,
            module_name=context.module_name,
            started_at=context.started_at,
            duration_ms=context.elapsed_ms(),
            overall_confidence=clamp_confidence(overall_confidence),
            model_identifiers=models,
            outcome=determine_outcome(stages),
            service_calls=len(called),
            estimated_cost=len(called) * self.cost_per_service_call,
            stage_statuses={stage.stage: stage.status.value for stage in stages},
        )

    async def record(self, run: PipelineRun) -> bool:
        """Persist a closed run. Never raises.

        Returns:
            True if the run was stored
        """
        LOGGER.info(
            f"Pipeline run {run.run_id} finished: {run.outcome.value}",
            extra={
                "module_name": run.module_name,
                "duration_ms": run.duration_ms,
                "overall_confidence": run.overall_confidence,
                "service_calls": run.service_calls,
                "estimated_cost": run.estimated_cost,
            }
        )
        if self.repository is None:
            return False

        try:
            await self.repository.add(run)
            return True
        except Exception as e:
            LOGGER.error(f"Failed to track model performance: {e}", exc_info=True)
            return False
