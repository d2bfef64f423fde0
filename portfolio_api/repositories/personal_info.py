"""Personal info repository: the single site-owner profile."""

from typing import Any, Dict, Optional

from sqlalchemy import func, insert, select, update

from ..core import log as app_log
from ..models import PersonalInfo
from .base import BaseRepository, serialize_row

personal_info = PersonalInfo.__table__

PROFILE_FIELDS = (
    "name",
    "title",
    "bio",
    "about",
    "email",
    "phone",
    "location",
    "profile_image",
    "resume_url",
    "github_url",
    "linkedin_url",
    "twitter_url",
    "instagram_url",
)


def present(row: Dict[str, Any]) -> Dict[str, Any]:
    data = serialize_row(row)
    # Aliases expected by the frontend.
    data["full_name"] = row.get("name")
    data["avatar_url"] = row.get("profile_image")
    return data


class PersonalInfoRepository(BaseRepository):
    CACHE_PREFIX = "personal_info"

    async def get(self) -> Optional[Dict[str, Any]]:
        """Latest profile row, or None if none has been saved yet."""

        async def load() -> Optional[Dict[str, Any]]:
            row = await self.executor.execute_single(
                select(personal_info)
                .order_by(personal_info.c.id.desc())
                .limit(1)
            )
            return present(row) if row else None

        return await self.cached(self.cache_key("current"), load)

    async def upsert(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Update the latest profile row in place, or insert the first one."""
        values = {name: data[name] for name in PROFILE_FIELDS if name in data}

        current = await self.executor.execute_single(
            select(personal_info.c.id).order_by(personal_info.c.id.desc()).limit(1)
        )
        if current is None:
            values.setdefault("name", "")
            await self.executor.execute(insert(personal_info).values(**values))
        else:
            values["updated_at"] = func.now()
            await self.executor.execute(
                update(personal_info)
                .where(personal_info.c.id == current["id"])
                .values(**values)
            )

        await self.invalidate()
        app_log.activity("data: personal info updated", fields=sorted(values))
        return await self.get()
