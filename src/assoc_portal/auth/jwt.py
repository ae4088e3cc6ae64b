"""
assoc_portal.auth.jwt

JWT issuing and validation helpers.

Responsibilities:
- Issue short-lived access tokens and password-recovery tokens for the local backend.
- Decode and validate JWTs with strict claim requirements (iss/aud/exp/iat/sub).

Note:
- The hosted service's token format is opaque to the rest of the portal; only the
  local backend reads these claims.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

import jwt
from jwt import InvalidTokenError

from assoc_portal.settings import Settings

TokenPurpose = Literal["access", "recovery"]


@dataclass(frozen=True, slots=True)
class JwtConfig:
    alg: str
    issuer: str
    audience: str
    secret: str

    @classmethod
    def from_settings(cls, settings: Settings) -> JwtConfig:
        return cls(
            alg=settings.jwt_alg,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            secret=settings.jwt_secret,
        )


class JwtValidationError(Exception):
    pass


def issue_token(
    *,
    cfg: JwtConfig,
    subject: str,
    email: str,
    purpose: TokenPurpose = "access",
    ttl: timedelta = timedelta(hours=1),
) -> str:
    now = datetime.now(tz=UTC)
    payload: dict[str, Any] = {
        "iss": cfg.issuer,
        "aud": cfg.audience,
        "sub": subject,
        "email": email,
        "purpose": purpose,
        # Unique per token so two sign-ins in the same second still differ.
        "jti": uuid.uuid4().hex,
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    }
    return jwt.encode(payload, cfg.secret, algorithm=cfg.alg)


def decode_and_validate(
    *, cfg: JwtConfig, token: str, purpose: TokenPurpose = "access"
) -> dict[str, Any]:
    try:
        payload = jwt.decode(
            token,
            cfg.secret,
            algorithms=[cfg.alg],
            issuer=cfg.issuer,
            audience=cfg.audience,
            options={
                "require": ["exp", "iat", "iss", "aud", "sub"],
            },
        )
    except InvalidTokenError as e:
        raise JwtValidationError(str(e)) from e

    # A recovery link must never be usable as a regular access token and vice versa.
    if payload.get("purpose", "access") != purpose:
        raise JwtValidationError(f"token purpose is not {purpose!r}")
    return payload


# --- Module Notes -----------------------------------------------------------
# Token issuing is used by `backend.local` (sign-in, sign-up, recovery links).
