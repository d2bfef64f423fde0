"""Tag repository."""

from typing import Any, Dict, List, Optional

from sqlalchemy import select

from ..models import Tag
from .base import BaseRepository, serialize_row, serialize_rows

tags = Tag.__table__


class TagRepository(BaseRepository):
    CACHE_PREFIX = "tags"

    async def list(self, type: Optional[str] = None) -> List[Dict[str, Any]]:
        async def load() -> List[Dict[str, Any]]:
            stmt = select(tags).order_by(tags.c.usage_count.desc(), tags.c.name.asc())
            if type:
                stmt = stmt.where(tags.c.type == type)
            return serialize_rows(await self.executor.execute(stmt))

        return await self.cached(self.cache_key("list", type or "all"), load)

    async def popular(self, limit: int = 10, type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Most used tags, skipping ones nothing refers to."""

        async def load() -> List[Dict[str, Any]]:
            stmt = (
                select(tags)
                .where(tags.c.usage_count > 0)
                .order_by(tags.c.usage_count.desc(), tags.c.name.asc())
                .limit(limit)
            )
            if type:
                stmt = stmt.where(tags.c.type == type)
            return serialize_rows(await self.executor.execute(stmt))

        return await self.cached(self.cache_key("popular", limit, type or "all"), load)

    async def get_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        async def load() -> Optional[Dict[str, Any]]:
            row = await self.executor.execute_single(select(tags).where(tags.c.slug == slug))
            return serialize_row(row) if row else None

        return await self.cached(self.cache_key("slug", slug), load)
