"""
Project Repository

Data access for portfolio projects: filtered listing with a dynamically built
WHERE clause, slug lookups, partial updates and tag/skill/image relations.
List and detail reads are cached under the `projects:` prefix; every write
drops that family.
"""

import hashlib
import json
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import delete, false, func, insert, or_, select, true, update
from sqlalchemy.ext.asyncio import AsyncConnection

from ..core import log as app_log
from ..models import Project, ProjectImage, ProjectSkill, Skill, Tag, TagUsage
from .base import BaseRepository, serialize_row, serialize_rows

logger = structlog.get_logger()

projects = Project.__table__
project_skills = ProjectSkill.__table__
project_images = ProjectImage.__table__
skills = Skill.__table__
tags = Tag.__table__
tag_usage = TagUsage.__table__

SORT_FIELDS = ("created_at", "title", "view_count", "display_order")
STATUSES = ("published", "draft", "all")
SEARCH_COLUMNS = (
    projects.c.title,
    projects.c.description,
    projects.c.detailed_description,
    projects.c.content,
    projects.c.technologies,
)
PROJECT_FIELDS = (
    "title",
    "description",
    "detailed_description",
    "content",
    "excerpt",
    "technologies",
    "meta_description",
    "meta_keywords",
    "thumbnail_image",
    "featured_image",
    "demo_url",
    "github_url",
    "start_date",
    "end_date",
    "is_ongoing",
    "status",
    "is_featured",
    "is_published",
    "display_order",
)

CONTENT_TYPE = "project"


@dataclass
class ProjectFilters:
    """Optional filters for project listing. Empty values mean "no filter"."""

    limit: int = 10
    offset: int = 0
    search: str = ""
    tags: List[str] = field(default_factory=list)
    skills: List[str] = field(default_factory=list)
    featured: Optional[bool] = None
    status: str = "published"
    sort: str = "created_at"
    order: str = "desc"
    published_only: bool = True

    def fingerprint(self, include_paging: bool = True) -> str:
        """Stable short hash of the filter values, used in cache keys."""
        data = asdict(self)
        data["tags"] = sorted(self.tags)
        data["skills"] = sorted(self.skills)
        data["search"] = self.search.strip()
        if not include_paging:
            data.pop("limit")
            data.pop("offset")
        encoded = json.dumps(data, sort_keys=True).encode("utf-8")
        return hashlib.sha1(encoded).hexdigest()[:16]


def build_conditions(filters: ProjectFilters) -> list:
    """Translate filters into WHERE clause expressions, combined with AND."""
    conditions = []

    if filters.status == "published":
        conditions.append(projects.c.is_published == true())
    elif filters.status == "draft":
        conditions.append(projects.c.is_published == false())
    elif filters.published_only:
        conditions.append(projects.c.is_published == true())

    if filters.featured is not None:
        conditions.append(projects.c.is_featured == (true() if filters.featured else false()))

    if filters.tags:
        tagged = (
            select(tag_usage.c.content_id)
            .join(tags, tags.c.id == tag_usage.c.tag_id)
            .where(
                tag_usage.c.content_type == CONTENT_TYPE,
                tags.c.slug.in_(filters.tags),
            )
        )
        conditions.append(projects.c.id.in_(tagged))

    if filters.skills:
        skilled = (
            select(project_skills.c.project_id)
            .join(skills, skills.c.id == project_skills.c.skill_id)
            .where(skills.c.name.in_(filters.skills))
        )
        conditions.append(projects.c.id.in_(skilled))

    search = filters.search.strip()
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(*(column.ilike(pattern) for column in SEARCH_COLUMNS)))

    return conditions


def build_order(filters: ProjectFilters) -> list:
    """Featured projects first, then the requested sort."""
    sort = filters.sort if filters.sort in SORT_FIELDS else "created_at"
    descending = filters.order.lower() != "asc"

    if sort == "display_order":
        return [
            projects.c.is_featured.desc(),
            projects.c.display_order.asc(),
            projects.c.created_at.desc(),
            projects.c.id.desc(),
        ]

    column = projects.c[sort]
    return [
        projects.c.is_featured.desc(),
        column.desc() if descending else column.asc(),
        projects.c.id.desc(),
    ]


def generate_slug(title: str) -> str:
    """Lowercase, keep latin letters, digits and Hangul, join words with hyphens."""
    slug = re.sub(r"[^a-z0-9가-힣\s-]", "", title.lower())
    slug = re.sub(r"\s+", "-", slug)
    return re.sub(r"-+", "-", slug).strip("-")


def tag_slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]", "-", name.lower())
    slug = re.sub(r"-+", "-", slug).strip("-")
    if not slug:
        slug = "tag-" + hashlib.md5(name.encode("utf-8")).hexdigest()[:8]
    return slug


def present_summary(row: Dict[str, Any], relations: Dict[str, List[str]]) -> Dict[str, Any]:
    data = serialize_row(row)
    data["featured"] = bool(row["is_featured"])
    data["long_description"] = row.get("content") or row.get("detailed_description")
    data["skills"] = relations.get("skills", [])
    data["tags"] = relations.get("tags", [])
    data["images"] = relations.get("images", [])
    return data


class ProjectRepository(BaseRepository):
    """Project data access with read-through caching."""

    CACHE_PREFIX = "projects"
    CACHE_TTL = 600

    async def list_with_filters(self, filters: ProjectFilters) -> List[Dict[str, Any]]:
        """
        List projects matching the filters, with skill, tag and image names.

        Args:
            filters: Filter, sort and paging options

        Returns:
            Serialized project summaries
        """
        key = self.cache_key("list", filters.fingerprint())

        async def load() -> List[Dict[str, Any]]:
            stmt = (
                select(projects)
                .where(*build_conditions(filters))
                .order_by(*build_order(filters))
                .limit(filters.limit)
                .offset(filters.offset)
            )
            rows = await self.executor.execute(stmt)
            relations = await self._summary_relations([row["id"] for row in rows])
            return [present_summary(row, relations.get(row["id"], {})) for row in rows]

        return await self.cached(key, load)

    async def count_with_filters(self, filters: ProjectFilters) -> int:
        key = self.cache_key("count", filters.fingerprint(include_paging=False))

        async def load() -> int:
            stmt = (
                select(func.count())
                .select_from(projects)
                .where(*build_conditions(filters))
            )
            row = await self.executor.execute_single(stmt)
            return int(next(iter(row.values()))) if row else 0

        return await self.cached(key, load)

    async def _summary_relations(self, project_ids: List[int]) -> Dict[int, Dict[str, List[str]]]:
        relations: Dict[int, Dict[str, List[str]]] = {
            project_id: {"skills": [], "tags": [], "images": []} for project_id in project_ids
        }
        if not project_ids:
            return relations

        skill_rows = await self.executor.execute(
            select(project_skills.c.project_id, skills.c.name)
            .join(skills, skills.c.id == project_skills.c.skill_id)
            .where(project_skills.c.project_id.in_(project_ids))
            .order_by(skills.c.name.asc())
        )
        for row in skill_rows:
            relations[row["project_id"]]["skills"].append(row["name"])

        tag_rows = await self.executor.execute(
            select(tag_usage.c.content_id, tags.c.name)
            .join(tags, tags.c.id == tag_usage.c.tag_id)
            .where(
                tag_usage.c.content_type == CONTENT_TYPE,
                tag_usage.c.content_id.in_(project_ids),
            )
            .order_by(tags.c.name.asc())
        )
        for row in tag_rows:
            relations[row["content_id"]]["tags"].append(row["name"])

        image_rows = await self.executor.execute(
            select(project_images.c.project_id, project_images.c.image_url)
            .where(project_images.c.project_id.in_(project_ids))
            .order_by(project_images.c.display_order.asc(), project_images.c.id.asc())
        )
        for row in image_rows:
            relations[row["project_id"]]["images"].append(row["image_url"])

        return relations

    async def _detail(self, row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if row is None:
            return None

        project_id = row["id"]
        skill_rows = await self.executor.execute(
            select(skills)
            .join(project_skills, skills.c.id == project_skills.c.skill_id)
            .where(project_skills.c.project_id == project_id)
            .order_by(skills.c.name.asc())
        )
        image_rows = await self.executor.execute(
            select(project_images)
            .where(project_images.c.project_id == project_id)
            .order_by(project_images.c.display_order.asc(), project_images.c.id.asc())
        )
        tag_rows = await self.executor.execute(
            select(tags)
            .join(tag_usage, tags.c.id == tag_usage.c.tag_id)
            .where(
                tag_usage.c.content_type == CONTENT_TYPE,
                tag_usage.c.content_id == project_id,
            )
            .order_by(tags.c.name.asc())
        )

        data = serialize_row(row)
        data["featured"] = bool(row["is_featured"])
        data["long_description"] = row.get("content") or row.get("detailed_description")
        data["skills"] = serialize_rows(skill_rows)
        data["images"] = serialize_rows(image_rows)
        data["tags"] = serialize_rows(tag_rows)
        return data

    async def get_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        async def load() -> Optional[Dict[str, Any]]:
            row = await self.executor.execute_single(
                select(projects).where(projects.c.slug == slug)
            )
            return await self._detail(row)

        return await self.cached(self.cache_key("slug", slug), load)

    async def get_by_id(self, project_id: int) -> Optional[Dict[str, Any]]:
        async def load() -> Optional[Dict[str, Any]]:
            row = await self.executor.execute_single(
                select(projects).where(projects.c.id == project_id)
            )
            return await self._detail(row)

        return await self.cached(self.cache_key("id", project_id), load)

    # Writes

    async def _unique_slug(
        self, conn: AsyncConnection, title: str, exclude_id: Optional[int] = None
    ) -> str:
        base = generate_slug(title) or "project"
        candidate = base
        suffix = 2
        while True:
            stmt = select(projects.c.id).where(projects.c.slug == candidate)
            if exclude_id is not None:
                stmt = stmt.where(projects.c.id != exclude_id)
            if not await self.executor.execute_on(conn, stmt):
                return candidate
            candidate = f"{base}-{suffix}"
            suffix += 1

    async def _set_tags(self, conn: AsyncConnection, project_id: int, names: List[str]) -> None:
        await self.executor.execute_on(
            conn,
            delete(tag_usage).where(
                tag_usage.c.content_type == CONTENT_TYPE,
                tag_usage.c.content_id == project_id,
            ),
        )

        seen = set()
        for raw_name in names:
            name = str(raw_name).strip()
            if not name or name in seen:
                continue
            seen.add(name)

            rows = await self.executor.execute_on(
                conn, select(tags.c.id).where(tags.c.name == name)
            )
            if rows:
                tag_id = rows[0]["id"]
            else:
                created = await self.executor.execute_on(
                    conn,
                    insert(tags)
                    .values(name=name, slug=tag_slug(name), type=CONTENT_TYPE)
                    .returning(tags.c.id),
                )
                tag_id = created[0]["id"]

            await self.executor.execute_on(
                conn,
                insert(tag_usage).values(
                    tag_id=tag_id, content_type=CONTENT_TYPE, content_id=project_id
                ),
            )

        await self._refresh_tag_usage(conn)

    async def _refresh_tag_usage(self, conn: AsyncConnection) -> None:
        usage = (
            select(func.count())
            .select_from(tag_usage)
            .where(tag_usage.c.tag_id == tags.c.id)
            .scalar_subquery()
        )
        await self.executor.execute_on(conn, update(tags).values(usage_count=usage))

    async def invalidate(self) -> None:
        await super().invalidate()
        # Tag usage counts change with project tags.
        await self.cache.invalidate("tags:")

    async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a project, generate its slug and attach its tags atomically.

        Args:
            data: Project fields; `title` is required, `tags` is a list of names

        Returns:
            The created project in detail form
        """
        values = {name: data[name] for name in PROJECT_FIELDS if data.get(name) is not None}

        async def work(conn: AsyncConnection) -> int:
            values["slug"] = await self._unique_slug(conn, data["title"])
            created = await self.executor.execute_on(
                conn, insert(projects).values(**values).returning(projects.c.id)
            )
            project_id = created[0]["id"]
            if data.get("tags"):
                await self._set_tags(conn, project_id, data["tags"])
            return project_id

        project_id = await self.executor.execute_transaction(work)
        await self.invalidate()
        app_log.activity("data: project created", project_id=project_id, slug=values["slug"])
        return await self.get_by_id(project_id)

    async def update(self, project_id: int, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Apply a partial update. Only keys present in `data` are written.

        Returns:
            The updated project, or None if it does not exist
        """
        values = {
            name: data[name]
            for name in PROJECT_FIELDS
            if name in data and (data[name] is not None or projects.c[name].nullable)
        }

        async def work(conn: AsyncConnection) -> bool:
            exists = await self.executor.execute_on(
                conn, select(projects.c.id).where(projects.c.id == project_id)
            )
            if not exists:
                return False

            if values.get("title"):
                values["slug"] = await self._unique_slug(
                    conn, values["title"], exclude_id=project_id
                )
            values["updated_at"] = func.now()
            await self.executor.execute_on(
                conn, update(projects).where(projects.c.id == project_id).values(**values)
            )
            if data.get("tags") is not None:
                await self._set_tags(conn, project_id, data["tags"])
            return True

        if not await self.executor.execute_transaction(work):
            return None

        await self.invalidate()
        app_log.activity("data: project updated", project_id=project_id, fields=sorted(values))
        return await self.get_by_id(project_id)

    async def delete(self, project_id: int) -> bool:
        """Delete a project and its skill, image and tag links in one transaction."""

        async def work(conn: AsyncConnection) -> bool:
            await self.executor.execute_on(
                conn, delete(project_skills).where(project_skills.c.project_id == project_id)
            )
            await self.executor.execute_on(
                conn, delete(project_images).where(project_images.c.project_id == project_id)
            )
            await self.executor.execute_on(
                conn,
                delete(tag_usage).where(
                    tag_usage.c.content_type == CONTENT_TYPE,
                    tag_usage.c.content_id == project_id,
                ),
            )
            result = await self.executor.execute_on(
                conn, delete(projects).where(projects.c.id == project_id)
            )
            await self._refresh_tag_usage(conn)
            return result.affected_rows > 0

        deleted = await self.executor.execute_transaction(work)
        if deleted:
            await self.invalidate()
            app_log.activity("data: project deleted", project_id=project_id)
        return deleted

    async def increment_view(self, slug: str) -> bool:
        # View counts are allowed to lag behind cached reads.
        result = await self.executor.execute(
            update(projects)
            .where(projects.c.slug == slug)
            .values(view_count=projects.c.view_count + 1)
        )
        return result.affected_rows > 0

    async def add_image(
        self,
        project_id: int,
        image_url: str,
        alt_text: Optional[str] = None,
        display_order: int = 0,
    ) -> Optional[Dict[str, Any]]:
        exists = await self.executor.execute_single(
            select(projects.c.id).where(projects.c.id == project_id)
        )
        if exists is None:
            return None

        created = await self.executor.execute_single(
            insert(project_images)
            .values(
                project_id=project_id,
                image_url=image_url,
                alt_text=alt_text,
                display_order=display_order,
            )
            .returning(project_images)
        )
        await self.invalidate()
        return serialize_row(created)

    async def remove_image(self, image_id: int) -> bool:
        result = await self.executor.execute(
            delete(project_images).where(project_images.c.id == image_id)
        )
        if result.affected_rows:
            await self.invalidate()
        return result.affected_rows > 0
