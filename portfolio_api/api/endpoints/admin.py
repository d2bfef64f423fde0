"""
Admin endpoints.

Write access to the profile, projects and interests. Every route requires the
X-Admin-Token header; successful writes invalidate the affected cache family
inside the repositories.
"""

from datetime import date
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ...core import log as app_log
from ..dependencies import InterestsDep, PersonalInfoDep, ProjectsDep, require_admin

logger = structlog.get_logger()
router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


class PersonalInfoUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    title: Optional[str] = Field(None, max_length=200)
    bio: Optional[str] = None
    about: Optional[str] = None
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    location: Optional[str] = Field(None, max_length=200)
    profile_image: Optional[str] = Field(None, max_length=500)
    resume_url: Optional[str] = Field(None, max_length=500)
    github_url: Optional[str] = Field(None, max_length=500)
    linkedin_url: Optional[str] = Field(None, max_length=500)
    twitter_url: Optional[str] = Field(None, max_length=500)
    instagram_url: Optional[str] = Field(None, max_length=500)


class ProjectBase(BaseModel):
    description: Optional[str] = None
    detailed_description: Optional[str] = None
    content: Optional[str] = None
    excerpt: Optional[str] = None
    technologies: Optional[str] = None
    meta_description: Optional[str] = Field(None, max_length=500)
    meta_keywords: Optional[str] = Field(None, max_length=500)
    thumbnail_image: Optional[str] = Field(None, max_length=500)
    featured_image: Optional[str] = Field(None, max_length=500)
    demo_url: Optional[str] = Field(None, max_length=500)
    github_url: Optional[str] = Field(None, max_length=500)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_ongoing: Optional[bool] = None
    status: Optional[str] = Field(None, max_length=50)
    is_featured: Optional[bool] = None
    is_published: Optional[bool] = None
    display_order: Optional[int] = None
    tags: Optional[List[str]] = None


class ProjectCreate(ProjectBase):
    title: str = Field(..., min_length=1, max_length=200)


class ProjectUpdate(ProjectBase):
    title: Optional[str] = Field(None, min_length=1, max_length=200)


class ProjectImageCreate(BaseModel):
    image_url: str = Field(..., min_length=1, max_length=500)
    alt_text: Optional[str] = Field(None, max_length=255)
    display_order: int = 0


class InterestCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: str = Field("general", max_length=100)
    display_order: int = 0


class InterestUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    display_order: Optional[int] = None


def _blank_to_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: (None if value == "" else value) for key, value in data.items()}


@router.put("/personal-info")
async def update_personal_info(
    payload: PersonalInfoUpdate, repo: PersonalInfoDep
) -> Dict[str, Any]:
    info = await repo.upsert(_blank_to_none(payload.model_dump(exclude_unset=True)))
    app_log.admin("Personal info updated")
    return {"success": True, "message": "Personal info updated", "data": info}


@router.post("/projects", status_code=status.HTTP_201_CREATED)
async def create_project(payload: ProjectCreate, repo: ProjectsDep) -> Dict[str, Any]:
    project = await repo.create(payload.model_dump(exclude_unset=True))
    app_log.admin("Project created", project_id=project["id"], slug=project["slug"])
    return {"success": True, "message": "Project created", "data": project}


@router.put("/projects/{project_id}")
async def update_project(
    project_id: int, payload: ProjectUpdate, repo: ProjectsDep
) -> Dict[str, Any]:
    project = await repo.update(project_id, payload.model_dump(exclude_unset=True))
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    app_log.admin("Project updated", project_id=project_id)
    return {"success": True, "message": "Project updated", "data": project}


@router.delete("/projects/{project_id}")
async def delete_project(project_id: int, repo: ProjectsDep) -> Dict[str, Any]:
    if not await repo.delete(project_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    app_log.admin("Project deleted", project_id=project_id)
    return {"success": True, "message": "Project deleted"}


@router.post("/projects/{project_id}/images", status_code=status.HTTP_201_CREATED)
async def add_project_image(
    project_id: int, payload: ProjectImageCreate, repo: ProjectsDep
) -> Dict[str, Any]:
    image = await repo.add_image(
        project_id, payload.image_url, payload.alt_text, payload.display_order
    )
    if image is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return {"success": True, "data": image}


@router.delete("/projects/images/{image_id}")
async def remove_project_image(image_id: int, repo: ProjectsDep) -> Dict[str, Any]:
    if not await repo.remove_image(image_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
    return {"success": True, "message": "Image removed"}


@router.post("/interests", status_code=status.HTTP_201_CREATED)
async def create_interest(payload: InterestCreate, repo: InterestsDep) -> Dict[str, Any]:
    interest = await repo.create(payload.model_dump())
    app_log.admin("Interest created", interest_id=interest["id"])
    return {"success": True, "message": "Interest created", "data": interest}


@router.put("/interests/{interest_id}")
async def update_interest(
    interest_id: int, payload: InterestUpdate, repo: InterestsDep
) -> Dict[str, Any]:
    interest = await repo.update(interest_id, payload.model_dump(exclude_unset=True))
    if interest is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Interest not found")
    return {"success": True, "message": "Interest updated", "data": interest}


@router.delete("/interests/{interest_id}")
async def delete_interest(interest_id: int, repo: InterestsDep) -> Dict[str, Any]:
    if not await repo.delete(interest_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Interest not found")
    return {"success": True, "message": "Interest deleted"}
