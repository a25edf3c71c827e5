from intake_ai.repositories.base_repository import BaseRepository, InMemoryRepository
from intake_ai.repositories.pipeline_run_repository import PipelineRunRepository
from intake_ai.repositories.record_repository import AssembledRecordRepository

__all__ = [
    "AssembledRecordRepository",
    "BaseRepository",
    "InMemoryRepository",
    "PipelineRunRepository",
]
