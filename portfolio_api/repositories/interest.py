"""Interest repository."""

from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, insert, select, update

from ..core import log as app_log
from ..models import Interest
from .base import BaseRepository, serialize_row, serialize_rows

interests = Interest.__table__

INTEREST_FIELDS = ("title", "description", "category", "display_order")


class InterestRepository(BaseRepository):
    CACHE_PREFIX = "interests"

    async def list(self, category: Optional[str] = None) -> List[Dict[str, Any]]:
        async def load() -> List[Dict[str, Any]]:
            stmt = select(interests).order_by(
                interests.c.display_order.asc(), interests.c.created_at.desc(), interests.c.id.asc()
            )
            if category:
                stmt = stmt.where(interests.c.category == category)
            return serialize_rows(await self.executor.execute(stmt))

        return await self.cached(self.cache_key("list", category or "all"), load)

    async def get(self, interest_id: int) -> Optional[Dict[str, Any]]:
        async def load() -> Optional[Dict[str, Any]]:
            row = await self.executor.execute_single(
                select(interests).where(interests.c.id == interest_id)
            )
            return serialize_row(row) if row else None

        return await self.cached(self.cache_key("id", interest_id), load)

    async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        values = {name: data[name] for name in INTEREST_FIELDS if data.get(name) is not None}
        row = await self.executor.execute_single(
            insert(interests).values(**values).returning(interests.c.id)
        )
        await self.invalidate()
        app_log.activity("data: interest created", interest_id=row["id"])
        return await self.get(row["id"])

    async def update(self, interest_id: int, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        values = {
            name: data[name]
            for name in INTEREST_FIELDS
            if name in data and (data[name] is not None or interests.c[name].nullable)
        }
        values["updated_at"] = func.now()
        result = await self.executor.execute(
            update(interests).where(interests.c.id == interest_id).values(**values)
        )
        if not result.affected_rows:
            return None

        await self.invalidate()
        app_log.activity("data: interest updated", interest_id=interest_id)
        return await self.get(interest_id)

    async def delete(self, interest_id: int) -> bool:
        result = await self.executor.execute(
            delete(interests).where(interests.c.id == interest_id)
        )
        if result.affected_rows:
            await self.invalidate()
            app_log.activity("data: interest deleted", interest_id=interest_id)
        return result.affected_rows > 0
