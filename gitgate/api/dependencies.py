"""FastAPI dependencies resolving the components stored on app.state"""

from fastapi import Request

from gitgate.core.auth import AuthGate
from gitgate.core.config import Settings
from gitgate.core.exceptions import AuthenticationError
from gitgate.core.repository import RepositoryLifecycle, RepositoryPathResolver
from gitgate.infrastructure.git_subprocess import GitBackend


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_path_resolver(request: Request) -> RepositoryPathResolver:
    return request.app.state.path_resolver


def get_lifecycle(request: Request) -> RepositoryLifecycle:
    return request.app.state.lifecycle


def get_git_backend(request: Request) -> GitBackend:
    return request.app.state.git_backend


def get_auth_gate(request: Request) -> AuthGate:
    return request.app.state.auth_gate


async def require_basic_auth(request: Request) -> None:
    """
    Reject the request unless it carries Basic credentials with a valid token.

    Git clients retry with credentials after a 401 that names a Basic realm,
    so the challenge header is always sent.
    """
    gate = get_auth_gate(request)
    if not gate.authenticate(request.headers.get("Authorization")):
        settings = get_settings_dep(request)
        raise AuthenticationError(realm=settings.auth_realm)
