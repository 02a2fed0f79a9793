"""Request and response models for the management API"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from gitgate.core.repository import RepoInfo


class CreateRepositoryRequest(BaseModel):
    """Request model for creating a repository"""

    owner: str = Field(..., description="Repository owner")
    name: str = Field(..., description="Repository name, '.git' suffix optional")


class ForkRepositoryRequest(BaseModel):
    """Target of a fork"""

    owner: str = Field(..., description="Owner of the fork")
    name: str = Field(..., description="Name of the fork")


class UpdateRepositoryRequest(BaseModel):
    description: Optional[str] = Field(None, max_length=1000, description="Description")
    default_branch: Optional[str] = Field(None, description="Branch HEAD should point at")


class RepositoryCreatedResponse(BaseModel):
    message: str
    path: str


class RepositoryInfoResponse(BaseModel):
    """Response model for repository metadata"""

    owner: str = Field(..., description="Repository owner")
    name: str = Field(..., description="Repository name")
    default_branch: str = Field(..., description="Branch HEAD points at")
    size_bytes: int = Field(0, description="Repository size in bytes")
    branch_count: int = Field(0, description="Number of branches")
    tag_count: int = Field(0, description="Number of tags")
    last_commit_at: Optional[datetime] = Field(None, description="Commit time of HEAD")
    is_empty: bool = Field(..., description="Whether the repository has no refs")

    @classmethod
    def from_info(cls, info: RepoInfo) -> "RepositoryInfoResponse":
        return cls(
            owner=info.owner,
            name=info.name,
            default_branch=info.default_branch,
            size_bytes=info.size_bytes,
            branch_count=info.branch_count,
            tag_count=info.tag_count,
            last_commit_at=info.last_commit_at,
            is_empty=info.is_empty,
        )


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
