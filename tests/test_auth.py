"""Tests for Basic-auth token verification"""

import base64

import pytest

from gitgate.core.auth import AuthGate
from gitgate.core.config import Settings


def header(raw: str) -> str:
    return "Basic " + base64.b64encode(raw.encode()).decode()


class TestAuthGate:
    @pytest.fixture
    def secret(self, test_settings: Settings) -> str:
        return test_settings.jwt_secret

    @pytest.fixture
    def gate(self, secret: str) -> AuthGate:
        return AuthGate(secret)

    def test_requires_secret(self):
        with pytest.raises(ValueError):
            AuthGate("")

    def test_missing_header(self, gate: AuthGate):
        assert gate.authenticate(None) is False
        assert gate.authenticate("") is False

    def test_valid_token_any_username(self, gate: AuthGate, token_factory, basic_auth):
        token = token_factory()
        for username in ["git", "alice", ""]:
            assert gate.authenticate(basic_auth(token, username)["Authorization"])

    def test_scheme_is_case_insensitive(self, gate: AuthGate, token_factory):
        token = token_factory()
        assert gate.authenticate("basic " + header(f"git:{token}")[len("Basic "):])

    def test_bearer_scheme_rejected(self, gate: AuthGate, token_factory):
        assert gate.authenticate(f"Bearer {token_factory()}") is False

    def test_invalid_base64(self, gate: AuthGate):
        assert gate.authenticate("Basic !!!not-base64!!!") is False

    def test_missing_separator(self, gate: AuthGate, token_factory):
        assert gate.authenticate(header(token_factory())) is False

    def test_empty_password(self, gate: AuthGate):
        assert gate.authenticate(header("git:")) is False

    def test_wrong_signature(self, gate: AuthGate, token_factory, basic_auth):
        token = token_factory(secret="another-secret-key-that-is-long-enough")
        assert gate.authenticate(basic_auth(token)["Authorization"]) is False

    def test_garbage_token(self, gate: AuthGate):
        assert gate.authenticate(header("git:definitely.not.jwt")) is False

    def test_expired_token_rejected_by_default(self, gate: AuthGate, token_factory, basic_auth):
        token = token_factory(expires_in=-60)
        assert gate.authenticate(basic_auth(token)["Authorization"]) is False

    def test_expired_token_accepted_without_expiry_check(
        self, secret: str, token_factory, basic_auth
    ):
        gate = AuthGate(secret, validate_exp=False)
        token = token_factory(expires_in=-60)
        assert gate.authenticate(basic_auth(token)["Authorization"]) is True

    def test_token_without_exp(self, gate: AuthGate, token_factory, basic_auth):
        token = token_factory(expires_in=None)
        assert gate.authenticate(basic_auth(token)["Authorization"]) is True

    def test_algorithm_mismatch(self, secret: str, token_factory, basic_auth):
        gate = AuthGate(secret, algorithm="HS512")
        assert gate.authenticate(basic_auth(token_factory())["Authorization"]) is False
