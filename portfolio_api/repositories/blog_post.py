"""Blog post repository. Posts change more often, so they cache for less time."""

from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, true, update

from ..models import BlogPost, Tag, TagUsage
from .base import BaseRepository, serialize_row, serialize_rows

blog_posts = BlogPost.__table__
tags = Tag.__table__
tag_usage = TagUsage.__table__

CONTENT_TYPE = "blog_post"


class BlogPostRepository(BaseRepository):
    CACHE_PREFIX = "blog"
    CACHE_TTL = 300

    async def list(
        self, limit: int = 10, offset: int = 0, published_only: bool = True
    ) -> List[Dict[str, Any]]:
        async def load() -> List[Dict[str, Any]]:
            stmt = (
                select(blog_posts)
                .order_by(
                    func.coalesce(blog_posts.c.published_at, blog_posts.c.created_at).desc(),
                    blog_posts.c.id.desc(),
                )
                .limit(limit)
                .offset(offset)
            )
            if published_only:
                stmt = stmt.where(blog_posts.c.is_published == true())
            return serialize_rows(await self.executor.execute(stmt))

        key = self.cache_key("list", limit, offset, "published" if published_only else "all")
        return await self.cached(key, load)

    async def count(self, published_only: bool = True) -> int:
        async def load() -> int:
            stmt = select(func.count().label("total")).select_from(blog_posts)
            if published_only:
                stmt = stmt.where(blog_posts.c.is_published == true())
            row = await self.executor.execute_single(stmt)
            return int(row["total"]) if row else 0

        key = self.cache_key("count", "published" if published_only else "all")
        return await self.cached(key, load)

    async def list_featured(self, limit: int = 5, offset: int = 0) -> List[Dict[str, Any]]:
        async def load() -> List[Dict[str, Any]]:
            rows = await self.executor.execute(
                select(blog_posts)
                .where(blog_posts.c.is_published == true(), blog_posts.c.is_featured == true())
                .order_by(blog_posts.c.published_at.desc(), blog_posts.c.id.desc())
                .limit(limit)
                .offset(offset)
            )
            return serialize_rows(rows)

        return await self.cached(self.cache_key("featured", limit, offset), load)

    async def get_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        """Published post with its tags, or None."""

        async def load() -> Optional[Dict[str, Any]]:
            row = await self.executor.execute_single(
                select(blog_posts).where(
                    blog_posts.c.slug == slug, blog_posts.c.is_published == true()
                )
            )
            if row is None:
                return None

            tag_rows = await self.executor.execute(
                select(tags.c.id, tags.c.name, tags.c.slug)
                .join(tag_usage, tags.c.id == tag_usage.c.tag_id)
                .where(
                    tag_usage.c.content_type == CONTENT_TYPE,
                    tag_usage.c.content_id == row["id"],
                )
                .order_by(tags.c.name.asc())
            )
            post = serialize_row(row)
            post["tags"] = serialize_rows(tag_rows)
            return post

        return await self.cached(self.cache_key("slug", slug), load)

    async def increment_view(self, slug: str) -> bool:
        result = await self.executor.execute(
            update(blog_posts)
            .where(blog_posts.c.slug == slug)
            .values(view_count=blog_posts.c.view_count + 1)
        )
        return result.affected_rows > 0
