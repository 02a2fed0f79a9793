"""Repository-related type definitions"""
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from git import Repo


@dataclass
class RepositoryHandle:
    """An opened bare repository, owned by the request that opened it"""
    path: Path
    owner: str
    name: str
    repo: Repo

    def close(self) -> None:
        self.repo.close()

    def __enter__(self) -> "RepositoryHandle":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


@dataclass(frozen=True)
class RepoInfo:
    """Summary metadata derived from a repository on each request"""
    owner: str
    name: str
    default_branch: str
    size_bytes: int
    branch_count: int
    tag_count: int
    last_commit_at: Optional[datetime]
    is_empty: bool
