"""
Base repository with common record operations.
All repositories extend this class for record store access.
"""
from typing import Any, Dict, Generic, Optional, Type, TypeVar

from pydantic import BaseModel

from chatsync.core.record_store import FieldPath, OnError, OnUpdate, RecordStore, Unsubscribe

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseRepository(Generic[ModelType]):
    """
    Base repository for one collection of the shared record store.

    Converts between camelCase JSON records and pydantic models.
    """

    def __init__(self, model: Type[ModelType], store: RecordStore, collection: str):
        """
        Initialize repository.

        Args:
            model: Pydantic model class of the collection's records
            store: Shared record store
            collection: Collection name
        """
        self.model = model
        self.store = store
        self.collection = collection

    def to_model(self, record_id: str, record: Optional[Dict[str, Any]]) -> Optional[ModelType]:
        """
        Parse a raw record.

        Args:
            record_id: Record ID
            record: Raw record or None

        Returns:
            Model instance or None when the record is absent
        """
        if record is None:
            return None
        return self.model.model_validate(record)

    async def get(self, record_id: str) -> Optional[ModelType]:
        """
        Get a record by ID.

        Args:
            record_id: Record ID

        Returns:
            Model instance or None if not found

        Example:
            ```python
            conversation = await conversation_repo.get(conversation_id)
            if conversation:
                print(len(conversation.messages))
            ```
        """
        return self.to_model(record_id, await self.store.get(self.collection, record_id))

    async def exists(self, record_id: str) -> bool:
        """Check if a record exists."""
        return await self.store.get(self.collection, record_id) is not None

    async def create(self, record_id: str, instance: ModelType) -> ModelType:
        """
        Create or replace a record.

        Args:
            record_id: Record ID
            instance: Model to store

        Returns:
            The stored model
        """
        await self.store.set(
            self.collection,
            record_id,
            instance.model_dump(mode="json", by_alias=True)
        )
        return instance

    async def update(self, record_id: str, fields: Dict[FieldPath, Any]) -> None:
        """
        Merge raw (camelCase / dotted-path) fields into a record.

        Raises:
            RecordMissing: If the record does not exist
        """
        await self.store.update(self.collection, record_id, fields)

    async def subscribe(
        self,
        record_id: str,
        on_update: OnUpdate,
        on_error: Optional[OnError] = None
    ) -> Unsubscribe:
        """Subscribe to raw record pushes."""
        return await self.store.subscribe(self.collection, record_id, on_update, on_error)
