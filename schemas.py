"""
Database Schemas for the Portfolio app

Each Pydantic model corresponds to a MongoDB collection.
The collection name is the snake_case of the class name.

Collections:
- User: the portfolio owner (authentication + public profile)
- Project: portfolio projects
- Skill: skills with a proficiency level
- SoftwareApplication: tools and applications used
"""
from pydantic import BaseModel, Field, EmailStr, validate_email
from pydantic_core import PydanticCustomError
from typing import Optional, List
from datetime import datetime


class AssetRef(BaseModel):
    """Pointer to a file stored on the media host."""
    public_id: str = Field(..., description="Identifier on the media host")
    url: str = Field(..., description="Public URL of the file")


class User(BaseModel):
    full_name: str
    email: EmailStr
    phone: str
    about_me: str
    password_hash: str = Field(..., description="BCrypt hashed password")
    portfolio_url: str
    github_url: Optional[str] = None
    linkedin_url: Optional[str] = None
    twitter_url: Optional[str] = None
    instagram_url: Optional[str] = None
    facebook_url: Optional[str] = None
    avatar: AssetRef
    resume: AssetRef
    reset_password_token: Optional[str] = Field(None, description="sha256 of the emailed reset token")
    reset_password_expire: Optional[datetime] = None


class Project(BaseModel):
    title: str
    description: str
    git_repo_link: str
    project_link: str
    technologies: List[str] = Field(default_factory=list)
    stack: str
    deployed: bool = False
    project_banner: AssetRef


class Skill(BaseModel):
    title: str
    proficiency: int = Field(..., ge=0, le=100)
    svg: AssetRef


class SoftwareApplication(BaseModel):
    name: str
    svg: AssetRef


def normalize_email(value: str) -> str:
    """Canonical form stored for an address, the same one EmailStr produces."""
    try:
        return validate_email(value)[1]
    except PydanticCustomError:
        return value


# Fields never sent back to clients
PRIVATE_USER_FIELDS = ("password_hash", "reset_password_token", "reset_password_expire")
