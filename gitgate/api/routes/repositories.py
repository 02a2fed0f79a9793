"""Repository management API endpoints"""

from fastapi import APIRouter, Depends, Response, status

from gitgate.api.dependencies import get_lifecycle, require_basic_auth
from gitgate.api.models import (CreateRepositoryRequest, ForkRepositoryRequest,
                                RepositoryCreatedResponse, RepositoryInfoResponse,
                                UpdateRepositoryRequest)
from gitgate.core.repository import RepositoryLifecycle
from gitgate.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Lifecycle calls block on git and the filesystem, so handlers are sync
# and FastAPI runs them in its threadpool
router = APIRouter(
    prefix="/repo",
    tags=["repositories"],
    dependencies=[Depends(require_basic_auth)],
)


@router.post(
    "",
    response_model=RepositoryCreatedResponse,
    summary="Create repository",
    description="Initialize an empty bare repository with branch protection installed",
)
def create_repository(
    request: CreateRepositoryRequest,
    lifecycle: RepositoryLifecycle = Depends(get_lifecycle),
) -> RepositoryCreatedResponse:
    with lifecycle.init_bare(request.owner, request.name) as handle:
        path = handle.path

    return RepositoryCreatedResponse(
        message=f"Repository {request.owner}/{handle.name} created",
        path=str(path),
    )


@router.get(
    "/{owner}/{name}",
    response_model=RepositoryInfoResponse,
    summary="Get repository",
)
def get_repository(
    owner: str,
    name: str,
    lifecycle: RepositoryLifecycle = Depends(get_lifecycle),
) -> RepositoryInfoResponse:
    with lifecycle.open(owner, name) as handle:
        info = lifecycle.get_info(handle)

    return RepositoryInfoResponse.from_info(info)


@router.patch(
    "/{owner}/{name}",
    response_model=RepositoryInfoResponse,
    summary="Update repository",
    description="Change the description and/or the branch HEAD points at",
)
def update_repository(
    owner: str,
    name: str,
    update_request: UpdateRepositoryRequest,
    lifecycle: RepositoryLifecycle = Depends(get_lifecycle),
) -> RepositoryInfoResponse:
    with lifecycle.open(owner, name) as handle:
        if update_request.description is not None:
            lifecycle.set_description(handle, update_request.description)
        if update_request.default_branch is not None:
            lifecycle.set_default_branch(handle, update_request.default_branch)
        info = lifecycle.get_info(handle)

    logger.info(
        "repository_updated",
        owner=owner,
        repository=name,
        fields=sorted(update_request.model_dump(exclude_none=True)),
    )
    return RepositoryInfoResponse.from_info(info)


@router.delete(
    "/{owner}/{name}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete repository",
    description="Remove the repository directory. This cannot be undone.",
)
def delete_repository(
    owner: str,
    name: str,
    lifecycle: RepositoryLifecycle = Depends(get_lifecycle),
) -> Response:
    lifecycle.delete(owner, name)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{owner}/{name}/fork",
    response_model=RepositoryCreatedResponse,
    summary="Fork repository",
    description="Full clone of the source repository under a new owner and name",
)
def fork_repository(
    owner: str,
    name: str,
    request: ForkRepositoryRequest,
    lifecycle: RepositoryLifecycle = Depends(get_lifecycle),
) -> RepositoryCreatedResponse:
    with lifecycle.open(owner, name) as source:
        with lifecycle.fork(source, request.owner, request.name) as fork:
            path = fork.path

    return RepositoryCreatedResponse(
        message=f"Repository {owner}/{source.name} forked to {request.owner}/{fork.name}",
        path=str(path),
    )
