"""Storage for assembled records."""

from typing import List

from intake_ai.repositories.base_repository import InMemoryRepository
from intake_ai.schemas.records import AssembledRecord


class AssembledRecordRepository(InMemoryRepository[AssembledRecord]):
    """In-memory AssembledRecord store; identifiers are generated UUIDs."""

    def __init__(self):
        super().__init__()

    async def get_by_schema(self, schema_id: str) -> List[AssembledRecord]:
        return await self.get_all(limit=None, filters={"schema_id": schema_id})

    async def get_incomplete(self) -> List[AssembledRecord]:
        """Records still missing at least one required field."""
        return [record for record in await self.get_all(limit=None) if not record.is_complete]
