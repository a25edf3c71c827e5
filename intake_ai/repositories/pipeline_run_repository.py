"""Storage for PipelineRun performance records."""

from typing import List, Optional

from intake_ai.repositories.base_repository import InMemoryRepository
from intake_ai.schemas.records import PipelineOutcome, PipelineRun


class PipelineRunRepository(InMemoryRepository[PipelineRun]):
    """In-memory PipelineRun store keyed by ``run_id``."""

    def __init__(self):
        super().__init__(key_attr="run_id")

    async def get_by_module(self, module_name: str, limit: Optional[int] = 200) -> List[PipelineRun]:
        return await self.get_all(limit=limit, filters={"module_name": module_name})

    async def average_duration_ms(self, module_name: str) -> Optional[float]:
        """Mean duration of a module's runs, or None when it has not run."""
        runs = await self.get_by_module(module_name, limit=None)
        if not runs:
            return None
        return sum(run.duration_ms for run in runs) / len(runs)

    async def failure_rate(self, module_name: str) -> Optional[float]:
        runs = await self.get_by_module(module_name, limit=None)
        if not runs:
            return None
        failed = sum(1 for run in runs if run.outcome == PipelineOutcome.FAILED)
        return failed / len(runs)
