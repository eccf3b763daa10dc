"""
Uncached repositories

Direct single-table CRUD against the row store: no cache, no events.
Each call is one round trip.
"""
import logging
from datetime import datetime
from typing import Any, ClassVar, Dict, Generic, Iterable, List, Optional, Type, TypeVar

from medrefer.database.cache import Clock
from medrefer.database.codec import from_row, from_rows, to_row
from medrefer.database.query import Where
from medrefer.database.row_store import RowStore
from medrefer.database.schemas import Entity

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)


class PlainRepository(Generic[E]):
    """
    Pass-through CRUD for one entity type

    Subclasses set `model`, the column `foreign_key` used by
    find_by_foreign_key, and optionally `default_order_by`.
    """
    model: ClassVar[Type[Entity]]
    foreign_key: ClassVar[Optional[str]] = None
    default_order_by: ClassVar[str] = "created_at DESC"

    def __init__(self, store: RowStore, clock: Clock = datetime.now):
        self.store = store
        self.clock = clock
        self.table = self.model.table

    async def create(self, entity: E) -> str:
        await self.store.insert(self.table, to_row(entity))
        logger.debug("%s created: %s", self.model.__name__, entity.id)
        return entity.id

    async def create_many(self, entities: Iterable[E]) -> int:
        return await self.store.insert_many(self.table, [to_row(entity) for entity in entities])

    async def find_by_id(self, entity_id: str) -> Optional[E]:
        row = await self.store.query_one(self.table, Where.for_id(entity_id))
        return from_row(self.model, row) if row is not None else None

    async def find_by_foreign_key(self, value: str, order_by: Optional[str] = None) -> List[E]:
        if self.foreign_key is None:
            raise TypeError(f"{type(self).__name__} has no foreign key")
        return await self.find_where(Where().equals(self.foreign_key, value), order_by=order_by)

    async def find_all(
        self,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[E]:
        return await self.find_where(None, order_by=order_by, limit=limit, offset=offset)

    async def find_where(
        self,
        where: Optional[Where],
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

    async def update(self, entity: E) -> bool:
        """Write every column of entity back, stamping updated_at"""
        entity.touch(self.clock())
        values = to_row(entity)
        values.pop("id")
        return await self.store.update(self.table, values, Where.for_id(entity.id)) > 0

    async def update_fields(self, entity_id: str, values: Dict[str, Any]) -> bool:
        values = dict(values, updated_at=self.clock().isoformat())
        return await self.store.update(self.table, values, Where.for_id(entity_id)) > 0

    async def delete(self, entity_id: str) -> bool:
        return await self.store.delete(self.table, Where.for_id(entity_id)) > 0

    async def delete_where(self, where: Where) -> int:
        return await self.store.delete(self.table, where)

    async def count(self, where: Optional[Where] = None) -> int:
        return await self.store.count(self.table, where)
