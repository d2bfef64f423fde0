"""
Dependency injection for the API routers.

Long-lived services (settings, database manager, cache tiers, query executor)
are created in the application lifespan and stored in app.state. Dependency
functions read them from request.app.state; repositories are cheap wrappers
and are built per request.
"""

import secrets
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from ..core import log as app_log
from ..core.config import Settings
from ..core.database import DatabaseManager
from ..db.query_executor import QueryExecutor
from ..repositories import (
    BlogPostRepository,
    InterestRepository,
    PersonalInfoRepository,
    ProjectRepository,
    SkillRepository,
    TagRepository,
)
from ..services.cache.cache_manager import CacheManager


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise RuntimeError(f"{name} not initialized. Check lifespan setup.")
    return value


def get_app_settings(request: Request) -> Settings:
    return _state(request, "settings")


def get_database_manager(request: Request) -> DatabaseManager:
    return _state(request, "database")


def get_cache_manager(request: Request) -> CacheManager:
    return _state(request, "cache")


def get_query_executor(request: Request) -> QueryExecutor:
    return _state(request, "executor")


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
DatabaseDep = Annotated[DatabaseManager, Depends(get_database_manager)]
CacheDep = Annotated[CacheManager, Depends(get_cache_manager)]
ExecutorDep = Annotated[QueryExecutor, Depends(get_query_executor)]


def project_repository(executor: ExecutorDep, cache: CacheDep) -> ProjectRepository:
    return ProjectRepository(executor, cache)


def personal_info_repository(executor: ExecutorDep, cache: CacheDep) -> PersonalInfoRepository:
    return PersonalInfoRepository(executor, cache)


def skill_repository(executor: ExecutorDep, cache: CacheDep) -> SkillRepository:
    return SkillRepository(executor, cache)


def tag_repository(executor: ExecutorDep, cache: CacheDep) -> TagRepository:
    return TagRepository(executor, cache)


def interest_repository(executor: ExecutorDep, cache: CacheDep) -> InterestRepository:
    return InterestRepository(executor, cache)


def blog_post_repository(executor: ExecutorDep, cache: CacheDep) -> BlogPostRepository:
    return BlogPostRepository(executor, cache)


ProjectsDep = Annotated[ProjectRepository, Depends(project_repository)]
PersonalInfoDep = Annotated[PersonalInfoRepository, Depends(personal_info_repository)]
SkillsDep = Annotated[SkillRepository, Depends(skill_repository)]
TagsDep = Annotated[TagRepository, Depends(tag_repository)]
InterestsDep = Annotated[InterestRepository, Depends(interest_repository)]
BlogPostsDep = Annotated[BlogPostRepository, Depends(blog_post_repository)]


def require_admin(
    request: Request,
    settings: SettingsDep,
    x_admin_token: Annotated[Optional[str], Header()] = None,
) -> None:
    """
    Guard for admin routes.

    Raises:
        HTTPException: 503 when no admin token is configured, 401 on a
            missing or wrong token
    """
    if not settings.ADMIN_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API is disabled",
        )

    if not x_admin_token or not secrets.compare_digest(x_admin_token, settings.ADMIN_TOKEN):
        app_log.security(
            "Rejected admin request",
            path=request.url.path,
            method=request.method,
            client=request.client.host if request.client else None,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token",
        )
