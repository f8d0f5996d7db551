from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from userapi.core.config import settings

_DURATION = re.compile(r"^\s*(\d+)\s*([smhd])\s*$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}
DEFAULT_EXPIRES_SECONDS = 3600


def parse_expires_in(value: str | int | None) -> int:
    """Convert '30s', '15m', '1h' or '7d' into seconds (default one hour)."""
    if isinstance(value, int):
        return value if value > 0 else DEFAULT_EXPIRES_SECONDS
    match = _DURATION.match(value or "")
    if not match:
        return DEFAULT_EXPIRES_SECONDS
    return int(match.group(1)) * _UNIT_SECONDS[match.group(2)]


class InvalidTokenError(ValueError):
    pass


@dataclass
class JWTConfig:
    algorithm: str = "HS256"
    expires_seconds: int = DEFAULT_EXPIRES_SECONDS
    issuer: Optional[str] = None


class JWTHandler:
    """Issues and verifies signed access tokens."""

    def __init__(self, secret: str, config: Optional[JWTConfig] = None) -> None:
        self.secret = secret
        self.config = config or JWTConfig(
            algorithm=settings.JWT_ALGORITHM,
            expires_seconds=parse_expires_in(settings.JWT_EXPIRES_IN),
            issuer=settings.JWT_ISSUER,
        )

    def create_token(
        self, subject: str, claims: Optional[Dict[str, Any]] = None
    ) -> tuple[str, int]:
        """Return the encoded token and its expiry as a unix timestamp."""
        now = int(time.time())
        expires_at = now + self.config.expires_seconds
        payload: Dict[str, Any] = {"sub": str(subject), "iat": now, "exp": expires_at}
        if self.config.issuer:
            payload["iss"] = self.config.issuer
        if claims:
            payload.update(claims)
        token = jwt.encode(payload, self.secret, algorithm=self.config.algorithm)
        return token, expires_at

    def verify_token(self, token: str) -> Dict[str, Any]:
        options = {"verify_iss": bool(self.config.issuer)}
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.config.algorithm],
                issuer=self.config.issuer,
                options=options,
            )
        except JWTError as e:
            raise InvalidTokenError(f"Invalid token: {e}") from e


def get_jwt_handler() -> JWTHandler:
    return JWTHandler(settings.SECRET_KEY)
