"""Repository information reading"""
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, TypeVar

from gitgate.infrastructure.logging import get_logger

from .repository_types import RepoInfo, RepositoryHandle

logger = get_logger(__name__)

T = TypeVar("T")


class RepositoryInfoReader:
    """Derives RepoInfo; every field degrades on its own instead of failing the call"""

    def read_info(self, handle: RepositoryHandle) -> RepoInfo:
        repo = handle.repo

        def field(name: str, read: Callable[[], T], default: T) -> T:
            try:
                return read()
            except Exception as e:
                logger.warning(
                    "repository_info_field_unavailable",
                    owner=handle.owner,
                    repository=handle.name,
                    field=name,
                    error=str(e),
                )
                return default

        return RepoInfo(
            owner=handle.owner,
            name=handle.name,
            default_branch=field("default_branch", lambda: self._default_branch(handle), ""),
            size_bytes=field("size_bytes", lambda: self._calculate_size(handle.path), 0),
            branch_count=field("branch_count", lambda: len(repo.heads), 0),
            tag_count=field("tag_count", lambda: len(repo.tags), 0),
            last_commit_at=field("last_commit_at", lambda: self._last_commit_at(handle), None),
            is_empty=field("is_empty", lambda: len(repo.refs) == 0, True),
        )

    def _default_branch(self, handle: RepositoryHandle) -> str:
        # HEAD may point at an unborn branch; the symbolic target is still the default
        return handle.repo.head.reference.name

    def _last_commit_at(self, handle: RepositoryHandle) -> Optional[datetime]:
        head = handle.repo.head
        if not head.is_valid():
            return None
        return head.commit.committed_datetime.astimezone(timezone.utc)

    def _calculate_size(self, repo_path: Path) -> int:
        total_size = 0

        for dirpath, dirnames, filenames in os.walk(repo_path):
            for filename in filenames:
                filepath = Path(dirpath) / filename
                try:
                    total_size += filepath.lstat().st_size
                except OSError:
                    # Files can vanish while a push or gc runs
                    pass

        return total_size
