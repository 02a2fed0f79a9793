"""Repository path calculation and security"""
import unicodedata
from pathlib import Path

from gitgate.core.exceptions import InvalidNameError, NotFoundError, PermissionDeniedError

GIT_SUFFIX = ".git"


def strip_git_suffix(name: str) -> str:
    if name.endswith(GIT_SUFFIX):
        return name[: -len(GIT_SUFFIX)]
    return name


def validate_name(name: str) -> None:
    """
    Reject names that could address anything but a single directory entry.

    Raises:
        InvalidNameError: name is empty, starts with a dot or contains ``..``,
            a path separator or a control character
    """
    if not name:
        raise InvalidNameError(name, "name is empty")
    if name.startswith("."):
        raise InvalidNameError(name, "name starts with a dot")
    if ".." in name:
        raise InvalidNameError(name, "name contains '..'")
    if "/" in name or "\\" in name:
        raise InvalidNameError(name, "name contains a path separator")
    if any(unicodedata.category(ch) == "Cc" for ch in name):
        raise InvalidNameError(name, "name contains a control character")


def validate_owner(owner: str) -> None:
    """Owner directories must never look like a repository directory"""
    validate_name(owner)
    if owner.endswith(GIT_SUFFIX):
        raise InvalidNameError(owner, "owner ends with .git")


class RepositoryPathResolver:
    """Maps owner + repository name to ``data_root/owner/name.git``"""

    def __init__(self, data_root: Path):
        self.data_root = Path(data_root)

    def resolve(self, owner: str, name: str) -> Path:
        """
        Calculate the repository path without touching the filesystem.

        Args:
            owner: Repository owner
            name: Repository name, with or without a ``.git`` suffix

        Returns:
            ``data_root/owner/name.git``
        """
        name = strip_git_suffix(name)
        validate_owner(owner)
        validate_name(name)
        return self.data_root / owner / f"{name}{GIT_SUFFIX}"

    def require_existing(self, owner: str, name: str) -> Path:
        """Resolve and canonicalize a path that must already exist"""
        path = self.resolve(owner, name)
        if not path.exists():
            raise NotFoundError("Repository", details={"owner": owner, "name": strip_git_suffix(name)})
        return self.canonicalize(path)

    def canonicalize(self, path: Path) -> Path:
        """
        Resolve symlinks and verify the result stays inside the data root.

        Raises:
            PermissionDeniedError: the resolved path escapes the data root
        """
        root = self.data_root.resolve()
        resolved = path.resolve()
        try:
            resolved.relative_to(root)
        except ValueError:
            raise PermissionDeniedError(
                "Repository path escapes the data root",
                details={"path": str(path)},
            )
        if resolved == root:
            raise PermissionDeniedError(
                "Repository path resolves to the data root",
                details={"path": str(path)},
            )
        return resolved
