"""
Public portfolio endpoints.

Read-only views of the profile, skills, tags, projects, interests and blog,
served through the repositories and therefore through both cache tiers.
"""

import math
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, HTTPException, Query

from ...repositories import ProjectFilters
from ..dependencies import (
    BlogPostsDep,
    InterestsDep,
    PersonalInfoDep,
    ProjectsDep,
    SkillsDep,
    TagsDep,
)

logger = structlog.get_logger()
router = APIRouter(prefix="/api", tags=["portfolio"])

# Upper bound used when counting featured posts across every page.
FEATURED_COUNT_LIMIT = 1000


def _split_csv(value: Optional[str]) -> list:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_flag(value: Optional[str]) -> Optional[bool]:
    if value == "true":
        return True
    if value == "false":
        return False
    return None


def _not_found(message: str) -> HTTPException:
    return HTTPException(status_code=404, detail=message)


@router.get("/personal-info")
async def get_personal_info(repo: PersonalInfoDep) -> Dict[str, Any]:
    return {"success": True, "data": await repo.get()}


@router.get("/skills")
async def list_skills(repo: SkillsDep) -> Dict[str, Any]:
    """All skills, the category list and skills nested per category."""
    skills = await repo.list_with_categories()
    categories = await repo.list_categories()
    by_category = [
        {**category, "skills": [s for s in skills if s["category_id"] == category["id"]]}
        for category in categories
    ]
    return {
        "success": True,
        "data": {
            "skills": skills,
            "categories": categories,
            "skills_by_category": by_category,
        },
    }


@router.get("/skills/featured")
async def list_featured_skills(repo: SkillsDep) -> Dict[str, Any]:
    return {"success": True, "data": await repo.list_featured()}


@router.get("/tags")
async def list_tags(
    repo: TagsDep,
    type: Optional[str] = Query(None, description="blog, project or general"),
    popular: bool = Query(False, description="Only the most used tags"),
) -> Dict[str, Any]:
    if popular:
        tags = await repo.popular(20, type)
    else:
        tags = await repo.list(type)
    return {"success": True, "data": tags}


@router.get("/tags/{slug}")
async def get_tag(slug: str, repo: TagsDep) -> Dict[str, Any]:
    tag = await repo.get_by_slug(slug)
    if tag is None:
        raise _not_found("Tag not found")
    return {"success": True, "data": tag}


@router.get("/projects")
async def list_projects(
    repo: ProjectsDep,
    limit: int = Query(10, ge=1, le=100),
    page: int = Query(1, ge=1),
    featured: Optional[str] = Query(None, description="'true' or 'false'"),
    search: str = Query(""),
    tags: Optional[str] = Query(None, description="Comma separated tag slugs"),
    skills: Optional[str] = Query(None, description="Comma separated skill names"),
    status: str = Query("published", pattern="^(published|draft|all)$"),
    sort: str = Query("created_at"),
    order: str = Query("desc"),
) -> Dict[str, Any]:
    """
    Filtered, paginated project listing.

    Featured listings always start from the first page; their total is
    counted over every featured project.
    """
    filters = ProjectFilters(
        limit=limit,
        offset=(page - 1) * limit,
        search=search,
        tags=_split_csv(tags),
        skills=_split_csv(skills),
        featured=_parse_flag(featured),
        status=status,
        sort=sort,
        order=order,
    )

    if filters.featured:
        filters.offset = 0
    projects = await repo.list_with_filters(filters)
    # Counts ignore paging.
    total = await repo.count_with_filters(filters)

    return {
        "success": True,
        "data": projects,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit),
        },
    }


@router.get("/projects/slug/{slug}")
async def get_project(slug: str, repo: ProjectsDep) -> Dict[str, Any]:
    project = await repo.get_by_slug(slug)
    if project is None:
        raise _not_found("Project not found")
    return {"success": True, "data": project}


@router.post("/projects/slug/{slug}/view")
async def record_project_view(slug: str, repo: ProjectsDep) -> Dict[str, Any]:
    if not await repo.increment_view(slug):
        raise _not_found("Project not found")
    return {"success": True, "message": "View count incremented"}


@router.get("/interests")
async def list_interests(
    repo: InterestsDep, category: Optional[str] = Query(None)
) -> Dict[str, Any]:
    return {"success": True, "data": await repo.list(category)}


@router.get("/blog/posts")
async def list_blog_posts(
    repo: BlogPostsDep,
    limit: int = Query(10, ge=1, le=100),
    page: int = Query(1, ge=1),
    featured: Optional[str] = Query(None),
) -> Dict[str, Any]:
    offset = (page - 1) * limit
    if _parse_flag(featured):
        posts = await repo.list_featured(limit, 0)
        total = len(await repo.list_featured(FEATURED_COUNT_LIMIT, 0))
    else:
        posts = await repo.list(limit, offset)
        total = await repo.count()

    return {
        "success": True,
        "data": posts,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit),
        },
    }


@router.get("/blog/posts/{slug}")
async def get_blog_post(slug: str, repo: BlogPostsDep) -> Dict[str, Any]:
    post = await repo.get_by_slug(slug)
    if post is None:
        raise _not_found("Post not found")
    return {"success": True, "data": post}


@router.post("/blog/posts/{slug}/view")
async def record_blog_view(slug: str, repo: BlogPostsDep) -> Dict[str, Any]:
    if not await repo.increment_view(slug):
        raise _not_found("Post not found")
    return {"success": True, "message": "View count incremented"}
