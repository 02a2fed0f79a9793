"""FastAPI application setup"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from gitgate.api.exception_handlers import (base_api_exception_handler,
                                            general_exception_handler,
                                            http_exception_handler,
                                            validation_exception_handler)
from gitgate.api.routes import git_http, health, repositories
from gitgate.core.auth import AuthGate
from gitgate.core.config import Settings
from gitgate.core.exceptions import BaseAPIException
from gitgate.core.hooks import HookInstaller
from gitgate.core.repository import RepositoryLifecycle, RepositoryPathResolver
from gitgate.infrastructure.git_subprocess import GitBackend, GitProcessBridge
from gitgate.infrastructure.logging import get_logger, setup_logging
from gitgate.infrastructure.middleware.correlation import CorrelationIDMiddleware

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    setup_logging(settings)
    settings.data_root.mkdir(parents=True, exist_ok=True)
    logger.info(
        "application_startup",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        data_root=str(settings.data_root.resolve()),
        protected_branches=settings.protected_branches,
    )

    yield

    logger.info("application_shutdown", app_name=settings.app_name)


def create_app(settings: Settings, git_backend: Optional[GitBackend] = None) -> FastAPI:
    """
    Build the application around one immutable Settings object.

    Raises:
        ValueError: no token secret is configured
    """
    app = FastAPI(
        title=settings.app_name,
        description="Self-hosted Git Smart HTTP server",
        version=settings.app_version,
        lifespan=lifespan,
    )

    path_resolver = RepositoryPathResolver(settings.data_root)
    app.state.settings = settings
    app.state.path_resolver = path_resolver
    app.state.auth_gate = AuthGate(
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        validate_exp=settings.jwt_validate_exp,
    )
    app.state.lifecycle = RepositoryLifecycle(
        path_resolver,
        HookInstaller(settings.resolved_hook_command),
        default_branch=settings.default_branch,
    )
    app.state.git_backend = git_backend or GitProcessBridge(
        settings.git_binary_path, hook_environment=settings.hook_environment()
    )

    app.add_middleware(CorrelationIDMiddleware)

    app.add_exception_handler(BaseAPIException, base_api_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(health.router)
    app.include_router(repositories.router)
    app.include_router(git_http.router)

    return app
