"""Repository management core module"""
from .info_reader import RepositoryInfoReader
from .lifecycle import RepositoryLifecycle
from .path_resolver import (RepositoryPathResolver, strip_git_suffix, validate_name,
                            validate_owner)
from .repository_types import RepoInfo, RepositoryHandle

__all__ = [
    'RepositoryInfoReader',
    'RepositoryLifecycle',
    'RepositoryPathResolver',
    'RepoInfo',
    'RepositoryHandle',
    'strip_git_suffix',
    'validate_name',
    'validate_owner',
]
