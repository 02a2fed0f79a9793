"""Bare repository lifecycle: create, open, fork, delete and metadata"""
import shutil
from pathlib import Path

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from gitgate.core.exceptions import (AlreadyExistsError, InvalidNameError,
                                     NotFoundError, ToolInvocationError)
from gitgate.core.hooks.installer import HookInstaller
from gitgate.infrastructure.logging import get_logger

from .info_reader import RepositoryInfoReader
from .path_resolver import RepositoryPathResolver, strip_git_suffix
from .repository_types import RepoInfo, RepositoryHandle

logger = get_logger(__name__)


class RepositoryLifecycle:
    """Creates, opens, forks and deletes bare repositories under the data root"""

    def __init__(
        self,
        path_resolver: RepositoryPathResolver,
        hook_installer: HookInstaller,
        default_branch: str = "main",
    ):
        self.path_resolver = path_resolver
        self.hook_installer = hook_installer
        self.default_branch = default_branch
        self.info_reader = RepositoryInfoReader()

    def exists(self, owner: str, name: str) -> bool:
        try:
            return self.path_resolver.resolve(owner, name).exists()
        except InvalidNameError:
            return False

    def init_bare(self, owner: str, name: str) -> RepositoryHandle:
        """
        Initialize a bare repository with the pre-receive hook installed.

        Raises:
            InvalidNameError: owner or name is unsafe
            AlreadyExistsError: the target directory exists
            ToolInvocationError: git failed to initialize the repository
        """
        name = strip_git_suffix(name)
        path = self._new_repository_path(owner, name)

        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            repo = Repo.init(path, mkdir=True, bare=True)
            repo.git.symbolic_ref("HEAD", f"refs/heads/{self.default_branch}")
            self.hook_installer.install(path)
        except (GitCommandError, OSError) as e:
            self._discard(path)
            logger.error("repository_init_failed", owner=owner, repository=name, error=str(e))
            raise ToolInvocationError("Failed to initialize repository", details={"error": str(e)})

        logger.info("repository_created", owner=owner, repository=name, path=str(path))
        return RepositoryHandle(path=path, owner=owner, name=name, repo=repo)

    def open(self, owner: str, name: str) -> RepositoryHandle:
        """
        Raises:
            NotFoundError: no repository at the resolved path
        """
        name = strip_git_suffix(name)
        path = self.path_resolver.require_existing(owner, name)
        try:
            repo = Repo(path)
        except NoSuchPathError:
            raise NotFoundError("Repository", details={"owner": owner, "name": name})
        except InvalidGitRepositoryError:
            logger.error("repository_invalid", owner=owner, repository=name, path=str(path))
            raise ToolInvocationError("Not a git repository", details={"owner": owner, "name": name})

        return RepositoryHandle(path=path, owner=owner, name=name, repo=repo)

    def delete(self, owner: str, name: str) -> None:
        """Recursively remove a repository. There is no soft delete."""
        name = strip_git_suffix(name)
        path = self.path_resolver.require_existing(owner, name)

        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.error("repository_delete_failed", owner=owner, repository=name, error=str(e))
            raise ToolInvocationError("Failed to delete repository", details={"error": str(e)})

        logger.info("repository_deleted", owner=owner, repository=name, path=str(path))

    def fork(self, source: RepositoryHandle, new_owner: str, new_name: str) -> RepositoryHandle:
        """
        Clone ``source`` with full history into ``new_owner/new_name``.

        Raises:
            AlreadyExistsError: the fork target exists
            ToolInvocationError: git clone failed
        """
        new_name = strip_git_suffix(new_name)
        new_path = self._new_repository_path(new_owner, new_name)

        new_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            repo = Repo.clone_from(str(source.path), str(new_path), bare=True)
            self.hook_installer.install(new_path)
        except (GitCommandError, OSError) as e:
            self._discard(new_path)
            logger.error(
                "repository_fork_failed",
                source=f"{source.owner}/{source.name}",
                target=f"{new_owner}/{new_name}",
                error=str(e),
            )
            raise ToolInvocationError("Failed to fork repository", details={"error": str(e)})

        logger.info(
            "repository_forked",
            source=f"{source.owner}/{source.name}",
            target=f"{new_owner}/{new_name}",
            path=str(new_path),
        )
        return RepositoryHandle(path=new_path, owner=new_owner, name=new_name, repo=repo)

    def get_info(self, handle: RepositoryHandle) -> RepoInfo:
        return self.info_reader.read_info(handle)

    def set_description(self, handle: RepositoryHandle, description: str) -> None:
        (handle.path / "description").write_text(description.rstrip("\n") + "\n")

    def set_default_branch(self, handle: RepositoryHandle, branch: str) -> None:
        """Point HEAD at ``refs/heads/<branch>``; full ``refs/`` names are used as given"""
        ref_name = branch if branch.startswith("refs/") else f"refs/heads/{branch}"
        try:
            handle.repo.git.check_ref_format(ref_name)
        except GitCommandError:
            raise InvalidNameError(branch, "not a valid branch name")

        try:
            handle.repo.git.symbolic_ref("HEAD", ref_name)
        except GitCommandError as e:
            raise ToolInvocationError("Failed to update HEAD", details={"error": str(e)})

        logger.info(
            "repository_default_branch_changed",
            owner=handle.owner,
            repository=handle.name,
            ref=ref_name,
        )

    def _new_repository_path(self, owner: str, name: str) -> Path:
        path = self.path_resolver.resolve(owner, name)
        if path.exists():
            raise AlreadyExistsError("Repository", details={"owner": owner, "name": name})
        return self.path_resolver.canonicalize(path)

    def _discard(self, path: Path) -> None:
        if path.exists():
            shutil.rmtree(path, ignore_errors=True)
