import hashlib
import hmac
import logging
import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt

from config import Settings
from utils.errors import AuthenticationError, InvalidTokenError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
PBKDF2_ITERATIONS = 260_000


def hash_password(password: str) -> str:
    """Return a salted PBKDF2-SHA256 hash encoded as 'iterations$salt$digest'."""
    salt = os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return f"{PBKDF2_ITERATIONS}${salt.hex()}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        iterations, salt_hex, digest_hex = password_hash.split("$")
        digest = hashlib.pbkdf2_hmac(
            "sha256", password.encode("utf-8"), bytes.fromhex(salt_hex), int(iterations)
        )
    except (ValueError, TypeError):
        return False
    return hmac.compare_digest(digest.hex(), digest_hex)


class TokenSigner:
    """
    Issues and verifies signed JWTs for sessions and invitations.

    Args:
        settings: Provides the signing secret and token lifetime
    """

    def __init__(self, settings: Settings):
        self._secret = settings.jwt_secret
        self.ttl = timedelta(days=settings.token_ttl_days)

    def _sign(self, payload: Dict[str, Any]) -> str:
        now = datetime.now(timezone.utc)
        claims = {**payload, "iat": now, "exp": now + self.ttl}
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def _decode(self, token: str) -> Dict[str, Any]:
        return jwt.decode(token, self._secret, algorithms=[ALGORITHM])

    def issue_access_token(self, user_id: str, email: str) -> str:
        return self._sign({"id": user_id, "email": email})

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        """
        Decode a session token.

        Raises:
            AuthenticationError: If the token is expired, forged or lacks id/email
        """
        try:
            payload = self._decode(token)
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired") from None
        except jwt.PyJWTError as e:
            logger.warning("Rejected access token", extra={"error": str(e)})
            raise AuthenticationError("Invalid or expired token") from None
        if not payload.get("id") or not payload.get("email"):
            raise AuthenticationError("Invalid or expired token")
        return payload

    def issue_invitation_token(self, email: str, project_id: str) -> str:
        # jti keeps tokens unique even when two are signed in the same second
        return self._sign({"email": email, "projectId": project_id, "jti": uuid.uuid4().hex})

    def verify_invitation_token(self, token: str) -> Dict[str, Any]:
        """
        Decode an invitation token.

        Raises:
            InvalidTokenError: If the signature or expiry is invalid, or the
                payload lacks email/projectId
        """
        try:
            payload = self._decode(token)
        except jwt.PyJWTError as e:
            logger.warning("Rejected invitation token", extra={"error": str(e)})
            raise InvalidTokenError("Invalid invitation token") from None
        if not payload.get("email") or not payload.get("projectId"):
            raise InvalidTokenError("Invalid invitation token")
        return payload
