"""Bearer token decoding and caller identity."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from jose import JWTError, jwt

from safetrails.core.config import settings

ROLE_TRAVELER = "traveler"
ROLE_OPERATOR = "operator"
ROLE_SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation."""

    user_id: str
    role: str = ROLE_TRAVELER

    @property
    def is_operator(self) -> bool:
        return self.role == ROLE_OPERATOR

    @property
    def is_system(self) -> bool:
        return self.role == ROLE_SYSTEM


SYSTEM_ACTOR = Actor(user_id="system", role=ROLE_SYSTEM)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Decode and validate a JWT issued by the identity provider. Returns payload or None if invalid."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None
