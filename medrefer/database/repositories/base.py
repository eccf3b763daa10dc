"""
Cached repository base

Read-through, time-expiring cache in front of one table, with write-through
invalidation and change notification. The database stays the single source
of truth; the cache only ever holds what was last read or written, as
private copies: entities handed in or out are never the cached objects.

Invalidation rules:
- create / full update  -> cache entry refreshed with the written entity
- partial update        -> cache entry evicted (next read goes to the database)
- delete                -> cache entry evicted
- list / filter queries -> never cached (the cache is keyed by id only)
"""
import json
import logging
from datetime import datetime
from typing import Any, ClassVar, Dict, Generic, Iterable, List, Optional, Type, TypeVar

from medrefer.core.config import CACHE_TTL_SECONDS, LISTING_DEBOUNCE_SECONDS
from medrefer.core.errors import ConstraintError, DuplicateKeyError, RepositoryError
from medrefer.database.cache import CacheState, Clock, TTLCache
from medrefer.database.codec import from_row, from_rows, to_row
from medrefer.database.events import (
    LISTING_MAX_PENDING,
    ChangeEvent,
    ChangeKind,
    EventChannel,
    ListingNotifier,
)
from medrefer.database.query import Where
from medrefer.database.row_store import RowStore
from medrefer.database.schemas import Entity

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)


def is_unique_violation(exc: ConstraintError) -> bool:
    return "UNIQUE constraint failed" in str(exc.__cause__ or exc)


class CachedRepository(Generic[E]):
    """
    CRUD for one entity type with bounded read staleness and change events

    Subclasses set `model` and may override the hooks `validate`,
    `prepare_for_create`, `prepare_for_batch`, `check_duplicates` and
    `duplicate_error`.
    """
    model: ClassVar[Type[Entity]]
    default_order_by: ClassVar[str] = "created_at DESC"

    def __init__(
        self,
        store: RowStore,
        clock: Clock = datetime.now,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        listing_debounce_seconds: float = LISTING_DEBOUNCE_SECONDS,
    ):
        self.store = store
        self.clock = clock
        self.table = self.model.table
        self._cache: TTLCache[E] = TTLCache(ttl_seconds, clock)
        self.events: EventChannel[ChangeEvent[E]] = EventChannel(f"{self.table}.events")
        self.listings: EventChannel[List[E]] = EventChannel(
            f"{self.table}.listings", max_pending=LISTING_MAX_PENDING,
        )
        self._listing = ListingNotifier(self.listings, self.refresh_listing, listing_debounce_seconds)

    # Hooks

    def validate(self, entity: E) -> None:
        """Raise ValidationError if entity may not be written"""

    async def prepare_for_create(self, entity: E) -> E:
        """Fill generated fields before the duplicate check and insert"""
        return entity

    def prepare_for_batch(self, entity: E) -> E:
        return entity

    async def check_duplicates(self, entity: E) -> None:
        """Raise DuplicateKeyError if a secondary key is already taken"""

    def duplicate_error(self, entity: E, exc: ConstraintError) -> DuplicateKeyError:
        return DuplicateKeyError(f"{self.model.__name__} {entity.id} already exists", {"id": entity.id})

    # Cache management

    def clear_cache(self, entity_id: Optional[str] = None) -> None:
        """Evict one entry, or everything; never touches the database"""
        if entity_id is not None:
            self._cache.invalidate(entity_id)
        else:
            self._cache.clear()

    def cache_state(self, entity_id: str) -> CacheState:
        return self._cache.state(entity_id)

    def cached_at(self, entity_id: str) -> Optional[datetime]:
        return self._cache.cached_at(entity_id)

    def _remember(self, entity: E) -> E:
        # the cache keeps its own copy; callers never share it
        self._cache.set(entity.id, entity.model_copy(deep=True))
        return entity

    def _detached(self, cached: Optional[E]) -> Optional[E]:
        return None if cached is None else cached.model_copy(deep=True)

    # Notification

    def _publish(
        self,
        kind: ChangeKind,
        entity_id: str,
        entity: Optional[E] = None,
        new_status: Optional[str] = None,
    ) -> None:
        self.events.publish(ChangeEvent(
            kind=kind,
            entity_id=entity_id,
            entity=entity,
            new_status=new_status,
            timestamp=self.clock(),
        ))
        self._listing.schedule()

    async def refresh_listing(self) -> List[E]:
        """Re-query the default listing (list() publishes it)"""
        return await self.list()

    async def flush_listing(self) -> None:
        """Wait for a pending debounced listing push"""
        await self._listing.flush()

    # Create

    async def create(self, entity: E) -> str:
        """
        Validate, persist and cache a new entity

        Returns:
            The entity id

        Raises:
            ValidationError: entity fails a precondition (nothing is written)
            DuplicateKeyError: a unique key is already taken
            PersistenceError: the database failed
        """
        self.validate(entity)
        entity = await self.prepare_for_create(entity)
        await self.check_duplicates(entity)
        return await self._insert(entity)

    async def _insert(self, entity: E) -> str:
        try:
            await self.store.insert(self.table, to_row(entity))
        except ConstraintError as exc:
            if is_unique_violation(exc):
                raise self.duplicate_error(entity, exc) from exc
            raise

        self._remember(entity)
        self.after_create(entity)
        logger.info("%s created: %s", self.model.__name__, entity.id)
        self._publish(ChangeKind.CREATED, entity.id, entity=entity)
        return entity.id

    def after_create(self, entity: E) -> None:
        pass

    async def create_many(self, entities: Iterable[E]) -> int:
        """
        Insert several entities in one transaction

        Every entity is validated before anything is written. The whole
        cache is cleared afterwards.
        """
        prepared = []
        for entity in entities:
            self.validate(entity)
            prepared.append(self.prepare_for_batch(entity))

        try:
            inserted = await self.store.insert_many(self.table, [to_row(e) for e in prepared])
        except ConstraintError as exc:
            if is_unique_violation(exc):
                raise DuplicateKeyError(
                    f"Batch insert into {self.table} hit an existing key", {"count": len(prepared)}
                ) from exc
            raise

        self.clear_cache()
        for entity in prepared:
            self.after_create(entity)
            self._publish(ChangeKind.CREATED, entity.id, entity=entity)
        logger.info("Created %d %s rows in batch", inserted, self.table)
        return inserted

    # Read

    async def get_by_id(self, entity_id: str) -> Optional[E]:
        """
        Cached lookup by id

        A fresh cache entry is returned without touching the database. A
        miss or stale entry reads the row and restarts the entry's
        freshness window. Returns None when no such row exists.
        """
        cached = self._cache.get(entity_id)
        if cached is not None:
            logger.debug("Returning %s from cache: %s", self.model.__name__, entity_id)
            return self._detached(cached)

        row = await self.store.query_one(self.table, Where.for_id(entity_id))
        if row is None:
            return None
        return self._remember(from_row(self.model, row))

    async def _query(
        self,
        where: Optional[Where] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[E]:
        rows = await self.store.query(
            self.table,
            where,
            order_by=order_by or self.default_order_by,
            limit=limit,
            offset=offset,
        )
        return from_rows(self.model, rows)

    async def list(
        self,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        order_by: Optional[str] = None,
    ) -> List[E]:
        """
        Current listing straight from the database (bypasses the cache)

        The result is pushed to listing subscribers.
        """
        items = await self._query(order_by=order_by, limit=limit, offset=offset)
        self.listings.publish(items)
        return items

    async def count(self) -> int:
        return await self.store.count(self.table)

    # Update

    async def update(self, entity: E) -> bool:
        """
        Full update: re-validate, stamp updated_at, persist, refresh cache

        The caller's object is left as passed; the stamped copy is what gets
        written, cached and published.

        Returns:
            True if a row was affected, False if the id does not exist
        """
        entity = entity.model_copy(deep=True)
        self.validate(entity)
        entity.touch(self.clock())

        values = to_row(entity)
        values.pop("id")
        affected = await self.store.update(self.table, values, Where.for_id(entity.id))
        if affected == 0:
            return False

        self._remember(entity)
        logger.info("%s updated: %s", self.model.__name__, entity.id)
        self._publish(ChangeKind.UPDATED, entity.id, entity=entity)
        return True

    async def _update_fields(
        self,
        entity_id: str,
        values: Dict[str, Any],
        kind: ChangeKind = ChangeKind.UPDATED,
        new_status: Optional[str] = None,
    ) -> bool:
        """
        Partial update of a few columns; evicts rather than refreshes the
        cache entry because the cached copy no longer matches the row
        """
        values = dict(values, updated_at=self.clock().isoformat())
        affected = await self.store.update(self.table, values, Where.for_id(entity_id))
        if affected == 0:
            return False

        self.clear_cache(entity_id)
        self._publish(kind, entity_id, new_status=new_status)
        return True

    # Delete

    async def delete(self, entity_id: str) -> bool:
        affected = await self.store.delete(self.table, Where.for_id(entity_id))
        if affected == 0:
            return False

        self.clear_cache(entity_id)
        logger.info("%s deleted: %s", self.model.__name__, entity_id)
        self._publish(ChangeKind.DELETED, entity_id)
        return True

    # Export / import

    async def export_json(self, where: Optional[Where] = None) -> str:
        items = await self._query(where)
        return json.dumps([to_row(item) for item in items])

    async def import_json(self, payload: str) -> int:
        """
        Create every row in a JSON export

        Rows that fail validation, collide with an existing key or cannot be
        decoded are skipped and logged.

        Returns:
            Number of rows imported
        """
        imported = 0
        for row in json.loads(payload):
            try:
                await self.create(from_row(self.model, row))
                imported += 1
            except RepositoryError as exc:
                logger.warning("Skipping %s row %s: %s", self.table, row.get("id"), exc)
        return imported

    # Lifecycle

    def dispose(self) -> None:
        self._listing.close()
        self.events.close()
        self.listings.close()
        self.clear_cache()
