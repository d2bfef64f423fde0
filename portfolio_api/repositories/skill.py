"""Skill repository: skills grouped by category."""

from typing import Any, Dict, List

from sqlalchemy import func, select, true

from ..models import Skill, SkillCategory
from .base import BaseRepository, serialize_row, serialize_rows

skills = Skill.__table__
categories = SkillCategory.__table__


class SkillRepository(BaseRepository):
    CACHE_PREFIX = "skills"

    async def list_with_categories(self) -> List[Dict[str, Any]]:
        """Every skill with its category name, ordered by category then skill."""

        async def load() -> List[Dict[str, Any]]:
            rows = await self.executor.execute(
                select(
                    skills,
                    categories.c.name.label("category_name"),
                    categories.c.display_order.label("category_order"),
                )
                .select_from(skills.outerjoin(categories, skills.c.category_id == categories.c.id))
                .order_by(
                    categories.c.display_order.asc(),
                    skills.c.display_order.asc(),
                    skills.c.name.asc(),
                )
            )
            return serialize_rows(rows)

        return await self.cached(self.cache_key("all"), load)

    async def list_featured(self) -> List[Dict[str, Any]]:
        async def load() -> List[Dict[str, Any]]:
            rows = await self.executor.execute(
                select(skills, categories.c.name.label("category_name"))
                .select_from(skills.outerjoin(categories, skills.c.category_id == categories.c.id))
                .where(skills.c.is_featured == true())
                .order_by(skills.c.proficiency_level.desc(), skills.c.name.asc())
            )
            return serialize_rows(rows)

        return await self.cached(self.cache_key("featured"), load)

    async def list_categories(self) -> List[Dict[str, Any]]:
        """Categories with the number of skills in each."""

        async def load() -> List[Dict[str, Any]]:
            rows = await self.executor.execute(
                select(categories, func.count(skills.c.id).label("skill_count"))
                .select_from(categories.outerjoin(skills, skills.c.category_id == categories.c.id))
                .group_by(categories.c.id)
                .order_by(categories.c.display_order.asc(), categories.c.name.asc())
            )
            return [serialize_row(row) for row in rows]

        return await self.cached(self.cache_key("categories"), load)
