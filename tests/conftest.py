"""Pytest configuration and fixtures"""

import base64
import os
import shutil
import subprocess
import time
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, List, Optional

import jwt
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from gitgate.api.app import create_app
from gitgate.core.config import Settings
from gitgate.core.hooks import HookInstaller
from gitgate.core.repository import RepositoryLifecycle, RepositoryPathResolver
from gitgate.infrastructure.git_protocol import GitService, PktLineParser
from gitgate.infrastructure.git_subprocess import GitBackend, ServiceResult

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"


def pytest_configure(config):
    config.addinivalue_line("markers", "requires_git: test runs the git executable")


def pytest_collection_modifyitems(config, items):
    if shutil.which("git") is not None:
        return
    skip_git = pytest.mark.skip(reason="git executable not available")
    for item in items:
        if "requires_git" in item.keywords:
            item.add_marker(skip_git)


def make_token(secret: str = TEST_SECRET, expires_in: Optional[int] = 3600, **claims) -> str:
    payload = {"sub": "test-user", **claims}
    if expires_in is not None:
        payload["exp"] = int(time.time()) + expires_in
    return jwt.encode(payload, secret, algorithm="HS256")


def basic_auth_header(password: str, username: str = "git") -> Dict[str, str]:
    credentials = base64.b64encode(f"{username}:{password}".encode()).decode()
    return {"Authorization": f"Basic {credentials}"}


def run_git(*args: str, cwd: Optional[Path] = None) -> str:
    env = {
        **os.environ,
        "GIT_AUTHOR_NAME": "Test",
        "GIT_AUTHOR_EMAIL": "test@example.com",
        "GIT_COMMITTER_NAME": "Test",
        "GIT_COMMITTER_EMAIL": "test@example.com",
    }
    completed = subprocess.run(
        ["git", *args],
        cwd=str(cwd) if cwd else None,
        env=env,
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout.strip()


def commit_file(work_tree: Path, name: str, content: str, message: str) -> str:
    """Write a file, commit it and return the new commit id"""
    (work_tree / name).write_text(content)
    run_git("add", name, cwd=work_tree)
    run_git("commit", "-q", "-m", message, cwd=work_tree)
    return run_git("rev-parse", "HEAD", cwd=work_tree)


class FakeGitBackend(GitBackend):
    """Records calls and fabricates pkt-line output instead of running git"""

    def __init__(self):
        self.advertise_calls: List[tuple] = []
        self.run_calls: List[tuple] = []
        self.received_bodies: List[bytes] = []
        self.advertisement = PktLineParser.encode_lines(
            [f"{'a' * 40} refs/heads/main\x00side-band-64k\n"]
        )
        self.output = PktLineParser.encode_lines(["NAK\n"])
        self.run_error: Optional[BaseException] = None
        self.results: List[ServiceResult] = []
        self.disconnect_checks: List = []

    async def advertise(self, service: GitService, repository_path: Path) -> bytes:
        self.advertise_calls.append((service, repository_path))
        return self.advertisement

    async def run(
        self,
        service: GitService,
        repository_path: Path,
        body: AsyncIterator[bytes],
        is_disconnected=None,
    ) -> ServiceResult:
        self.run_calls.append((service, repository_path))
        self.disconnect_checks.append(is_disconnected)
        chunks = []
        async for chunk in body:
            chunks.append(chunk)
        self.received_bodies.append(b"".join(chunks))
        if self.run_error is not None:
            raise self.run_error
        result = ServiceResult(output=self.output, return_code=0)
        self.results.append(result)
        return result


@pytest.fixture
def data_root(tmp_path: Path) -> Path:
    root = tmp_path / "git-data"
    root.mkdir()
    return root


@pytest.fixture
def test_settings(data_root: Path) -> Settings:
    return Settings(
        _env_file=None,
        data_root=data_root,
        jwt_secret=TEST_SECRET,
        environment="development",
        log_format="console",
        # Pushes in tests go straight to disk and run the installed hook
        hook_command="true",
    )


@pytest.fixture
def path_resolver(data_root: Path) -> RepositoryPathResolver:
    return RepositoryPathResolver(data_root)


@pytest.fixture
def lifecycle(path_resolver: RepositoryPathResolver) -> RepositoryLifecycle:
    return RepositoryLifecycle(
        path_resolver,
        HookInstaller("true"),
        default_branch="main",
    )


@pytest.fixture
def fake_backend() -> FakeGitBackend:
    return FakeGitBackend()


@pytest.fixture
def app(test_settings: Settings, fake_backend: FakeGitBackend):
    return create_app(test_settings, git_backend=fake_backend)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest_asyncio.fixture
async def async_client(app) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return basic_auth_header(make_token())


@pytest.fixture
def work_tree(tmp_path: Path) -> Path:
    """A non-bare repository with one commit on main"""
    path = tmp_path / "work"
    path.mkdir()
    run_git("init", "-q", "-b", "main", cwd=path)
    commit_file(path, "README.md", "hello\n", "Initial commit")
    return path


@pytest.fixture
def token_factory() -> Callable[..., str]:
    """Signs test tokens; keyword arguments become claims"""
    return make_token


@pytest.fixture
def basic_auth() -> Callable[..., Dict[str, str]]:
    return basic_auth_header


@pytest.fixture
def git() -> Callable[..., str]:
    """Runs git with a fixed author and returns its stdout"""
    return run_git


@pytest.fixture
def commit() -> Callable[[Path, str, str, str], str]:
    return commit_file
