"""
Shared record store.

Documents are JSON objects addressed by (collection, id). Every write pushes
the full updated document to the record's subscribers. Two backends:

- InMemoryRecordStore: single-process store for tests and local runs.
- RedisRecordStore: JSON values in Redis, optimistic WATCH/MULTI transactions
  for merges and appends, one pub/sub channel per record for push delivery.
"""
import asyncio
import contextlib
import copy
import json
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from redis import asyncio as aioredis

from chatsync.config import settings
from chatsync.core.exceptions import RecordMissing

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
OnUpdate = Callable[[Optional[Record]], None]
OnError = Callable[[Exception], None]
Unsubscribe = Callable[[], Awaitable[None]]
FieldPath = Union[str, Tuple[str, ...]]


class _DeleteField:
    """Sentinel value removing a key in update()."""

    def __repr__(self) -> str:
        return "DELETE_FIELD"


DELETE_FIELD = _DeleteField()


def merge_fields(record: Record, fields: Dict[FieldPath, Any]) -> Record:
    """
    Apply an update to a copy of a record.

    Top-level keys are shallow-merged. Dotted keys ("typing.user_1") address a
    single entry of a nested map, creating intermediate maps as needed. A tuple
    key ("typing", "a.b@example.com") gives the path segments verbatim, for map
    keys that may themselves contain dots.
    DELETE_FIELD removes the addressed key. Lists are replaced wholesale.

    Args:
        record: Current record
        fields: Field updates

    Returns:
        New record with the updates applied
    """
    merged = copy.deepcopy(record)
    for path, value in fields.items():
        parts = list(path) if isinstance(path, tuple) else path.split(".")
        target = merged
        for part in parts[:-1]:
            child = target.get(part)
            if not isinstance(child, dict):
                if value is DELETE_FIELD:
                    target = None
                    break
                child = {}
                target[part] = child
            target = child

        if target is None:
            continue
        if value is DELETE_FIELD:
            target.pop(parts[-1], None)
        else:
            target[parts[-1]] = copy.deepcopy(value)
    return merged


class RecordStore(ABC):
    """Get/update/append/subscribe access to shared JSON records."""

    async def connect(self) -> None:
        """Open backend connections."""
        return None

    async def disconnect(self) -> None:
        """Close backend connections."""
        return None

    @abstractmethod
    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        """Return the current record, or None when absent."""

    @abstractmethod
    async def set(self, collection: str, record_id: str, record: Record) -> None:
        """Create or replace a record."""

    @abstractmethod
    async def update(self, collection: str, record_id: str, fields: Dict[FieldPath, Any]) -> None:
        """Merge fields into an existing record (see merge_fields)."""

    @abstractmethod
    async def append_to_array(self, collection: str, record_id: str, field: str, element: Any) -> None:
        """Append one element to an array field without losing concurrent appends."""

    @abstractmethod
    async def subscribe(
        self,
        collection: str,
        record_id: str,
        on_update: OnUpdate,
        on_error: Optional[OnError] = None
    ) -> Unsubscribe:
        """
        Deliver the current record, then the full record after every change.

        Returns:
            Coroutine function cancelling the subscription
        """


class InMemoryRecordStore(RecordStore):
    """Process-local record store with synchronous push delivery."""

    def __init__(self):
        self._records: Dict[Tuple[str, str], Record] = {}
        self._subscribers: Dict[Tuple[str, str], List[Tuple[OnUpdate, Optional[OnError]]]] = defaultdict(list)

    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        record = self._records.get((collection, record_id))
        return copy.deepcopy(record) if record is not None else None

    async def set(self, collection: str, record_id: str, record: Record) -> None:
        key = (collection, record_id)
        self._records[key] = copy.deepcopy(record)
        self._notify(key)

    async def update(self, collection: str, record_id: str, fields: Dict[FieldPath, Any]) -> None:
        key = (collection, record_id)
        if key not in self._records:
            raise RecordMissing(collection, record_id)
        self._records[key] = merge_fields(self._records[key], fields)
        self._notify(key)

    async def append_to_array(self, collection: str, record_id: str, field: str, element: Any) -> None:
        key = (collection, record_id)
        if key not in self._records:
            raise RecordMissing(collection, record_id)
        record = self._records[key]
        values = list(record.get(field) or [])
        values.append(copy.deepcopy(element))
        record[field] = values
        self._notify(key)

    async def subscribe(
        self,
        collection: str,
        record_id: str,
        on_update: OnUpdate,
        on_error: Optional[OnError] = None
    ) -> Unsubscribe:
        key = (collection, record_id)
        entry = (on_update, on_error)
        self._subscribers[key].append(entry)
        on_update(await self.get(collection, record_id))

        async def unsubscribe() -> None:
            if entry in self._subscribers[key]:
                self._subscribers[key].remove(entry)

        return unsubscribe

    def subscriber_count(self, collection: str, record_id: str) -> int:
        """Number of live subscriptions on a record."""
        return len(self._subscribers[(collection, record_id)])

    def _notify(self, key: Tuple[str, str]) -> None:
        for on_update, on_error in list(self._subscribers[key]):
            try:
                on_update(copy.deepcopy(self._records.get(key)))
            except Exception as e:
                logger.error(f"Subscriber callback failed for {key[0]}/{key[1]}: {e}", exc_info=True)
                if on_error:
                    on_error(e)


class RedisRecordStore(RecordStore):
    """Redis-backed record store with pub/sub push delivery."""

    def __init__(self, redis_url: str, password: Optional[str] = None, key_prefix: str = "chatsync"):
        """
        Initialize the store (call connect() before use).

        Args:
            redis_url: Redis connection URL
            password: Optional Redis password
            key_prefix: Prefix for record keys and change channels
        """
        self.redis_url = redis_url
        self.password = password or None
        self.key_prefix = key_prefix
        self.redis: Optional[aioredis.Redis] = None

    async def connect(self) -> None:
        """Establish connection to Redis."""
        self.redis = aioredis.from_url(
            self.redis_url,
            password=self.password,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
        try:
            await self.redis.ping()
        except Exception as e:
            logger.error(f"Could not connect to Redis record store at {self.redis_url}: {e}")
            raise
        logger.info("Connected to Redis record store")

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None

    def _key(self, collection: str, record_id: str) -> str:
        return f"{self.key_prefix}:record:{collection}:{record_id}"

    def _channel(self, collection: str, record_id: str) -> str:
        return f"{self.key_prefix}:changes:{collection}:{record_id}"

    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        raw = await self.redis.get(self._key(collection, record_id))
        return json.loads(raw) if raw is not None else None

    async def set(self, collection: str, record_id: str, record: Record) -> None:
        payload = json.dumps(record)
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(self._key(collection, record_id), payload)
            pipe.publish(self._channel(collection, record_id), payload)
            await pipe.execute()

    async def _mutate(
        self,
        collection: str,
        record_id: str,
        mutate: Callable[[Record], Record]
    ) -> Record:
        """
        Read-modify-write a record inside an optimistic transaction.

        WATCH makes the write fail when another client changed the record in
        between; redis-py then re-runs the callable until it commits.
        """
        key = self._key(collection, record_id)
        channel = self._channel(collection, record_id)

        async def apply(pipe) -> Record:
            raw = await pipe.get(key)
            if raw is None:
                raise RecordMissing(collection, record_id)
            updated = mutate(json.loads(raw))
            payload = json.dumps(updated)
            pipe.multi()
            pipe.set(key, payload)
            pipe.publish(channel, payload)
            return updated

        return await self.redis.transaction(apply, key, value_from_callable=True)

    async def update(self, collection: str, record_id: str, fields: Dict[FieldPath, Any]) -> None:
        await self._mutate(collection, record_id, lambda record: merge_fields(record, fields))

    async def append_to_array(self, collection: str, record_id: str, field: str, element: Any) -> None:
        def append(record: Record) -> Record:
            record[field] = list(record.get(field) or []) + [element]
            return record

        await self._mutate(collection, record_id, append)

    async def subscribe(
        self,
        collection: str,
        record_id: str,
        on_update: OnUpdate,
        on_error: Optional[OnError] = None
    ) -> Unsubscribe:
        channel = self._channel(collection, record_id)
        pubsub = self.redis.pubsub()
        # Subscribe before the initial read so no change falls in between.
        await pubsub.subscribe(channel)
        on_update(await self.get(collection, record_id))

        async def listen() -> None:
            try:
                async for message in pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    on_update(json.loads(message["data"]))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Subscription to {collection}/{record_id} failed: {e}")
                if on_error:
                    on_error(e)

        task = asyncio.create_task(listen())

        async def unsubscribe() -> None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

        return unsubscribe


def build_record_store() -> RecordStore:
    """Create the record store selected by settings.record_store_backend."""
    if settings.record_store_backend == "redis":
        return RedisRecordStore(
            settings.redis_url,
            password=settings.redis_password,
            key_prefix=settings.redis_key_prefix,
        )
    return InMemoryRecordStore()


# Global record store instance
record_store = build_record_store()
