from __future__ import annotations

import time
from dataclasses import dataclass, field

import jwt
import structlog

from backoffice.core.errors import SessionExpiredError

logger = structlog.get_logger(__name__)

EMAIL_CLAIM = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/emailaddress"
USER_ID_CLAIM = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/nameidentifier"
ROLE_CLAIM = "http://schemas.microsoft.com/ws/2008/06/identity/claims/role"


@dataclass
class Session:
    """Authenticated admin session built from an access token.

    The token is decoded without verifying its signature: the API verifies it
    on every request, the client only needs the identity claims and the expiry.
    """

    access_token: str | None
    user_id: str | None = None
    email: str | None = None
    role: str | None = None
    expires_at: float | None = None
    _claims: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_token(cls, token: str, *, now: float | None = None) -> "Session":
        try:
            claims = jwt.decode(
                token,
                options={"verify_signature": False, "verify_exp": False},
                algorithms=["HS256", "HS512", "RS256"],
            )
        except jwt.PyJWTError as exc:
            logger.warning("session_token_invalid", error=str(exc))
            raise SessionExpiredError("Jeton d'accès invalide.") from exc

        session = cls(
            access_token=token,
            user_id=claims.get(USER_ID_CLAIM) or claims.get("sub"),
            email=claims.get(EMAIL_CLAIM) or claims.get("email"),
            role=claims.get(ROLE_CLAIM) or claims.get("role"),
            expires_at=_expiry(claims),
            _claims=claims,
        )
        if session.is_expired(now):
            logger.info("session_token_expired", user_id=session.user_id)
            session.clear()
            raise SessionExpiredError()
        return session

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None

    def is_expired(self, now: float | None = None) -> bool:
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return float(self.expires_at) < current

    def authorization_header(self) -> dict[str, str]:
        if self.access_token is None:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}

    def clear(self) -> None:
        self.access_token = None
        self.user_id = None
        self.email = None
        self.role = None
        self.expires_at = None
        self._claims = {}


def _expiry(claims: dict) -> float | None:
    value = claims.get("exp")
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise SessionExpiredError("Jeton d'accès invalide.") from exc
