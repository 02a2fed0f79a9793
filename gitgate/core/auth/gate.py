"""Basic-auth credential verification for Git clients"""

import base64
import binascii
from typing import Optional

import jwt

from gitgate.infrastructure.logging import get_logger

logger = get_logger(__name__)


class AuthGate:
    """
    Verifies ``Authorization: Basic`` credentials whose password is a signed token.

    Git clients only speak Basic auth, so the token travels in the password
    field; the username is ignored.
    """

    SCHEME = "basic"

    def __init__(self, secret: str, algorithm: str = "HS256", validate_exp: bool = True):
        """
        Args:
            secret: shared HMAC secret
            algorithm: token signing algorithm
            validate_exp: when False, an expired token with a valid signature
                still authenticates
        """
        if not secret:
            raise ValueError("Secret key is required")
        self._secret = secret
        self._algorithm = algorithm
        self.validate_exp = validate_exp

    def authenticate(self, authorization: Optional[str]) -> bool:
        """Return True only for a well-formed Basic header carrying a valid token"""
        if not authorization:
            logger.warning("auth_missing_header")
            return False

        scheme, _, encoded = authorization.partition(" ")
        if scheme.lower() != self.SCHEME or not encoded.strip():
            logger.warning("auth_unsupported_scheme", scheme=scheme)
            return False

        try:
            decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            logger.warning("auth_malformed_credentials")
            return False

        if ":" not in decoded:
            logger.warning("auth_missing_separator")
            return False

        _, password = decoded.split(":", 1)
        if not password:
            logger.warning("auth_empty_password")
            return False

        return self.verify_token(password)

    def verify_token(self, token: str) -> bool:
        try:
            jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": self.validate_exp},
            )
        except jwt.PyJWTError as e:
            logger.warning("auth_invalid_token", error=str(e), error_type=type(e).__name__)
            return False

        return True
