"""Git Smart HTTP transport routes"""

import zlib
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from starlette.requests import ClientDisconnect

from gitgate.api.dependencies import get_git_backend, get_path_resolver, require_basic_auth
from gitgate.core.exceptions import ProtocolViolationError
from gitgate.core.repository import RepositoryPathResolver
from gitgate.infrastructure.git_protocol import (GitContentType, GitProtocolValidator,
                                                 PktLineParser)
from gitgate.infrastructure.git_subprocess import BridgeState, GitBackend
from gitgate.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(tags=["git"], dependencies=[Depends(require_basic_auth)])

# nginx's "client closed request"
CLIENT_CLOSED_REQUEST = 499

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Expires": "Fri, 01 Jan 1980 00:00:00 GMT",
}

GZIP_ENCODINGS = ("gzip", "x-gzip")


async def decoded_body(request: Request) -> AsyncIterator[bytes]:
    """
    Yield the request body as it arrives, inflating gzip bodies on the fly.

    Git compresses large upload-pack negotiations; nothing is buffered beyond
    one chunk either way.
    """
    encoding = request.headers.get("Content-Encoding", "").strip().lower()
    if encoding not in GZIP_ENCODINGS:
        async for chunk in request.stream():
            yield chunk
        return

    # 16 + MAX_WBITS: expect a gzip header and trailer
    decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
    async for chunk in request.stream():
        try:
            data = decompressor.decompress(chunk)
        except zlib.error as e:
            raise ProtocolViolationError(
                "Malformed gzip request body", details={"error": str(e)}
            )
        if data:
            yield data

    tail = decompressor.flush()
    if tail:
        yield tail


@router.get(
    "/{owner}/{repo}/info/refs",
    summary="Git info/refs",
    description="Smart HTTP ref advertisement",
    response_class=Response,
    responses={
        200: {"description": "pkt-line ref advertisement"},
        400: {"description": "Missing or unknown service"},
        401: {"description": "Authentication required"},
        404: {"description": "Repository not found"},
    },
)
async def info_refs(
    owner: str,
    repo: str,
    service: Optional[str] = Query(None, description="git-upload-pack or git-receive-pack"),
    path_resolver: RepositoryPathResolver = Depends(get_path_resolver),
    git_backend: GitBackend = Depends(get_git_backend),
) -> Response:
    git_service = GitProtocolValidator.validate_service(service)
    repository_path = path_resolver.require_existing(owner, repo)

    advertisement = await git_backend.advertise(git_service, repository_path)

    logger.info(
        "git_info_refs",
        owner=owner,
        repository=repo,
        service=git_service.value,
        size=len(advertisement),
    )
    return Response(
        content=PktLineParser.encode_ref_advertisement(git_service, advertisement),
        media_type=GitContentType.advertisement(git_service),
        headers=NO_CACHE_HEADERS,
    )


@router.post(
    "/{owner}/{repo}/{service}",
    summary="Git stateless RPC",
    description="git-upload-pack (fetch/clone) or git-receive-pack (push)",
    response_class=Response,
    responses={
        200: {"description": "Service output"},
        400: {"description": "Unknown service or malformed body"},
        401: {"description": "Authentication required"},
        404: {"description": "Repository not found"},
        499: {"description": "Client disconnected before the response was ready"},
    },
)
async def service_rpc(
    owner: str,
    repo: str,
    service: str,
    request: Request,
    path_resolver: RepositoryPathResolver = Depends(get_path_resolver),
    git_backend: GitBackend = Depends(get_git_backend),
) -> Response:
    git_service = GitProtocolValidator.validate_service(service)
    repository_path = path_resolver.require_existing(owner, repo)

    content_type = request.headers.get("Content-Type")
    if content_type != GitContentType.request(git_service):
        logger.warning(
            "git_unexpected_content_type",
            service=git_service.value,
            content_type=content_type,
        )

    try:
        result = await git_backend.run(
            git_service,
            repository_path,
            decoded_body(request),
            is_disconnected=request.is_disconnected,
        )
    except ClientDisconnect:
        logger.warning(
            "git_client_disconnected",
            owner=owner,
            repository=repo,
            service=git_service.value,
        )
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    result.state = BridgeState.RESPONDED
    logger.info(
        "git_service_rpc",
        owner=owner,
        repository=repo,
        service=git_service.value,
        return_code=result.return_code,
        size=len(result.output),
        input_truncated=result.input_truncated,
        state=result.state.value,
    )
    return Response(
        content=result.output,
        media_type=GitContentType.result(git_service),
        headers=NO_CACHE_HEADERS,
    )
