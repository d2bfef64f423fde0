"""
Repository Pattern Implementation

All data access goes through repositories, which run SQL through the query
executor and cache reads through the tiered cache.
"""

from .base import BaseRepository
from .blog_post import BlogPostRepository
from .interest import InterestRepository
from .personal_info import PersonalInfoRepository
from .project import ProjectFilters, ProjectRepository
from .skill import SkillRepository
from .tag import TagRepository

__all__ = [
    "BaseRepository",
    "BlogPostRepository",
    "InterestRepository",
    "PersonalInfoRepository",
    "ProjectFilters",
    "ProjectRepository",
    "SkillRepository",
    "TagRepository",
]
