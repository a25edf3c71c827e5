from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, List, Optional, TypeVar
from uuid import uuid4

from intake_ai.utils.logging import get_logger

ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)


class BaseRepository(ABC, Generic[ModelType]):
    """Storage seam for pipeline results.

    The pipeline holds no durable state; it hands finished values to a
    repository. Implementations decide where they live.
    """

    @abstractmethod
    async def add(self, item: ModelType) -> str:
        """Persist ``item`` and return its identifier."""

    @abstractmethod
    async def get_by_id(self, id: str) -> Optional[ModelType]:
        """Get a stored item by its identifier, or None."""

    @abstractmethod
    async def get_all(
        self,
        skip: int = 0,
        limit: Optional[int] = 200,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[ModelType]:
        """Get stored items in insertion order with optional pagination and filtering."""

    async def count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        return len(await self.get_all(limit=None, filters=filters))


class InMemoryRepository(BaseRepository[ModelType]):
    """Process-local repository keyed by an attribute of the stored model.

    Args:
        key_attr: Attribute used as identifier; a fresh UUID is generated
            per item when omitted
    """

    def __init__(self, key_attr: Optional[str] = None):
        self.key_attr = key_attr
        self._items: Dict[str, ModelType] = {}
        self.logger = LOGGER

    async def add(self, item: ModelType) -> str:
        key = str(getattr(item, self.key_attr)) if self.key_attr else str(uuid4())
        self._items[key] = item
        self.logger.debug(f"Stored {type(item).__name__} {key}")
        return key

    async def get_by_id(self, id: str) -> Optional[ModelType]:
        return self._items.get(id)

    async def get_all(
        self,
        skip: int = 0,
        limit: Optional[int] = 200,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[ModelType]:
        items = [
            item for item in self._items.values()
            if not filters or all(getattr(item, field, None) == value for field, value in filters.items())
        ]
        end = None if limit is None else skip + limit
        return items[skip:end]

    async def delete(self, id: str) -> bool:
        return self._items.pop(id, None) is not None
