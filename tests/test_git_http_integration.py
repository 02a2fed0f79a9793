"""Integration tests for the Git Smart HTTP endpoints"""

import gzip
from pathlib import Path
from typing import Dict

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.requests import ClientDisconnect

from gitgate.api.app import create_app
from gitgate.core.config import Settings
from gitgate.infrastructure.git_protocol import GitService, PktLineParser
from gitgate.infrastructure.git_subprocess import BridgeState


@pytest.fixture
def repo_dir(data_root: Path) -> Path:
    path = data_root / "alice" / "project.git"
    path.mkdir(parents=True)
    return path


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_info_refs_requires_credentials(self, async_client: AsyncClient, repo_dir: Path):
        response = await async_client.get(
            "/alice/project.git/info/refs", params={"service": "git-upload-pack"}
        )

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == 'Basic realm="gitgate"'
        assert response.json()["code"] == "GGT-401"

    @pytest.mark.asyncio
    async def test_invalid_token(self, async_client: AsyncClient, repo_dir: Path, basic_auth):
        response = await async_client.post(
            "/alice/project.git/git-upload-pack",
            content=b"0000",
            headers=basic_auth("not-a-token"),
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_expired_token(
        self, async_client: AsyncClient, repo_dir: Path, basic_auth, token_factory
    ):
        response = await async_client.get(
            "/alice/project.git/info/refs",
            params={"service": "git-upload-pack"},
            headers=basic_auth(token_factory(expires_in=-60)),
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_auth_checked_before_repository_lookup(self, async_client: AsyncClient):
        response = await async_client.get(
            "/alice/missing.git/info/refs", params={"service": "git-upload-pack"}
        )
        assert response.status_code == 401


class TestInfoRefs:
    @pytest.mark.asyncio
    async def test_upload_pack_advertisement(
        self,
        async_client: AsyncClient,
        auth_headers: Dict[str, str],
        fake_backend,
        repo_dir: Path,
    ):
        response = await async_client.get(
            "/alice/project.git/info/refs",
            params={"service": "git-upload-pack"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/x-git-upload-pack-advertisement"
        assert response.headers["cache-control"] == "no-cache"
        assert response.content == (
            b"001e# service=git-upload-pack\n0000" + fake_backend.advertisement
        )
        assert fake_backend.advertise_calls == [(GitService.UPLOAD_PACK, repo_dir.resolve())]

    @pytest.mark.asyncio
    async def test_receive_pack_advertisement(
        self, async_client: AsyncClient, auth_headers: Dict[str, str], repo_dir: Path
    ):
        response = await async_client.get(
            "/alice/project/info/refs",
            params={"service": "git-receive-pack"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/x-git-receive-pack-advertisement"
        assert response.content.startswith(b"001f# service=git-receive-pack\n0000")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("params", [{}, {"service": "git-upload-archive"}])
    async def test_missing_or_unknown_service(
        self, async_client: AsyncClient, auth_headers: Dict[str, str], repo_dir: Path, params
    ):
        response = await async_client.get(
            "/alice/project.git/info/refs", params=params, headers=auth_headers
        )
        assert response.status_code == 400
        assert response.json()["code"] == "GGT-400"

    @pytest.mark.asyncio
    async def test_repository_not_found(self, async_client: AsyncClient, auth_headers: Dict[str, str]):
        response = await async_client.get(
            "/alice/missing.git/info/refs",
            params={"service": "git-upload-pack"},
            headers=auth_headers,
        )
        assert response.status_code == 404
        assert response.json()["message"] == "Repository not found"

    @pytest.mark.asyncio
    async def test_invalid_owner(self, async_client: AsyncClient, auth_headers: Dict[str, str]):
        response = await async_client.get(
            "/al..ice/project.git/info/refs",
            params={"service": "git-upload-pack"},
            headers=auth_headers,
        )
        assert response.status_code == 400


class TestServiceRpc:
    @pytest.mark.asyncio
    async def test_upload_pack(
        self,
        async_client: AsyncClient,
        auth_headers: Dict[str, str],
        fake_backend,
        repo_dir: Path,
    ):
        body = PktLineParser.encode_lines([f"want {'a' * 40}\n"]) + b"0009done\n"
        response = await async_client.post(
            "/alice/project.git/git-upload-pack",
            content=body,
            headers={**auth_headers, "Content-Type": "application/x-git-upload-pack-request"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/x-git-upload-pack-result"
        assert response.content == fake_backend.output
        assert fake_backend.received_bodies == [body]
        assert fake_backend.run_calls == [(GitService.UPLOAD_PACK, repo_dir.resolve())]
        assert fake_backend.results[0].state == BridgeState.RESPONDED
        assert callable(fake_backend.disconnect_checks[0])

    @pytest.mark.asyncio
    async def test_receive_pack_result_type(
        self, async_client: AsyncClient, auth_headers: Dict[str, str], repo_dir: Path
    ):
        response = await async_client.post(
            "/alice/project.git/git-receive-pack",
            content=b"0000",
            headers={**auth_headers, "Content-Type": "application/x-git-receive-pack-request"},
        )
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/x-git-receive-pack-result"

    @pytest.mark.asyncio
    async def test_gzip_body_is_decompressed(
        self,
        async_client: AsyncClient,
        auth_headers: Dict[str, str],
        fake_backend,
        repo_dir: Path,
    ):
        body = PktLineParser.encode_lines([f"want {'b' * 40}\n"] * 200)
        response = await async_client.post(
            "/alice/project.git/git-upload-pack",
            content=gzip.compress(body),
            headers={
                **auth_headers,
                "Content-Type": "application/x-git-upload-pack-request",
                "Content-Encoding": "gzip",
            },
        )

        assert response.status_code == 200
        assert fake_backend.received_bodies == [body]

    @pytest.mark.asyncio
    async def test_malformed_gzip_body(
        self, async_client: AsyncClient, auth_headers: Dict[str, str], repo_dir: Path
    ):
        response = await async_client.post(
            "/alice/project.git/git-upload-pack",
            content=b"definitely not gzip",
            headers={**auth_headers, "Content-Encoding": "gzip"},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_service(
        self, async_client: AsyncClient, auth_headers: Dict[str, str], repo_dir: Path
    ):
        response = await async_client.post(
            "/alice/project.git/git-upload-archive", content=b"0000", headers=auth_headers
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_repository_not_found(
        self, async_client: AsyncClient, auth_headers: Dict[str, str]
    ):
        response = await async_client.post(
            "/alice/missing.git/git-upload-pack", content=b"0000", headers=auth_headers
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_client_disconnect(
        self,
        async_client: AsyncClient,
        auth_headers: Dict[str, str],
        fake_backend,
        repo_dir: Path,
    ):
        fake_backend.run_error = ClientDisconnect()

        response = await async_client.post(
            "/alice/project.git/git-upload-pack", content=b"0000", headers=auth_headers
        )

        assert response.status_code == 499

    @pytest.mark.asyncio
    async def test_correlation_id_echoed(
        self, async_client: AsyncClient, auth_headers: Dict[str, str], repo_dir: Path
    ):
        response = await async_client.post(
            "/alice/project.git/git-upload-pack",
            content=b"0000",
            headers={**auth_headers, "X-Correlation-ID": "abc-123"},
        )
        assert response.headers["X-Correlation-ID"] == "abc-123"


@pytest.mark.requires_git
class TestRealGitBackend:
    """Requests served by the real git executable"""

    @pytest.fixture
    def real_app(self, test_settings: Settings):
        return create_app(test_settings)

    @pytest.mark.asyncio
    async def test_advertisement_from_git(
        self, real_app, auth_headers: Dict[str, str], data_root: Path, work_tree: Path, git
    ):
        target = data_root / "alice" / "project.git"
        target.parent.mkdir(parents=True)
        git("clone", "-q", "--bare", str(work_tree), str(target))

        async with AsyncClient(transport=ASGITransport(app=real_app), base_url="http://test") as ac:
            response = await ac.get(
                "/alice/project.git/info/refs",
                params={"service": "git-upload-pack"},
                headers=auth_headers,
            )

        assert response.status_code == 200
        lines = PktLineParser.decode_lines(response.content)
        assert lines == [b"# service=git-upload-pack\n", None]
        rest = response.content[len(b"001e# service=git-upload-pack\n0000"):]
        assert b"refs/heads/main" in rest
