"""Request dependencies guarding protected routes."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import Annotated, List, Optional

from fastapi import Depends, Request
from fastapi.security import (
    HTTPAuthorizationCredentials,
    HTTPBasic,
    HTTPBasicCredentials,
    HTTPBearer,
)

from userapi.core.config import settings
from userapi.security.auth.jwt_handler import InvalidTokenError, get_jwt_handler
from userapi.utils.exceptions import UnauthorizedError
from userapi.utils.logger import get_logger

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)
basic_scheme = HTTPBasic(auto_error=False)


@dataclass
class CurrentUser:
    id: int
    email: Optional[str] = None
    roles: List[str] = field(default_factory=list)


def get_current_user(
    request: Request,
    credentials: Annotated[
        Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)
    ],
) -> CurrentUser:
    """Validate the bearer token and return the authenticated principal."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("Missing or invalid authorization header")

    try:
        payload = get_jwt_handler().verify_token(credentials.credentials)
        user_id = int(payload["sub"])
    except (InvalidTokenError, KeyError, TypeError, ValueError) as e:
        logger.debug("Rejected bearer token", path=request.url.path, error=str(e))
        raise UnauthorizedError("Invalid or expired token") from None

    return CurrentUser(
        id=user_id,
        email=payload.get("email"),
        roles=list(payload.get("roles") or []),
    )


CurrentUserDep = Annotated[CurrentUser, Depends(get_current_user)]


def require_metrics_access(
    credentials: Annotated[Optional[HTTPBasicCredentials], Depends(basic_scheme)],
) -> None:
    """
    HTTP Basic guard for the metrics endpoint.

    Development is lenient: missing or wrong credentials are logged and let
    through. Everywhere else they are rejected.
    """
    required_user = settings.METRICS_USERNAME
    required_password = settings.METRICS_PASSWORD
    lenient = settings.is_development

    if not required_user or not required_password:
        if lenient:
            logger.warning("Metrics credentials not configured, allowing access")
            return
        logger.error("Metrics credentials not configured")
        raise UnauthorizedError("Authentication configuration missing")

    if credentials is None:
        logger.warning("Metrics access attempted without credentials")
        if lenient:
            return
        raise UnauthorizedError(
            "Authentication required", headers={"WWW-Authenticate": "Basic"}
        )

    valid = secrets.compare_digest(
        credentials.username.encode(), required_user.encode()
    ) & secrets.compare_digest(
        credentials.password.encode(), required_password.encode()
    )
    if not valid:
        logger.warning("Metrics access denied", username=credentials.username)
        if lenient:
            return
        raise UnauthorizedError(
            "Invalid credentials", headers={"WWW-Authenticate": "Basic"}
        )

    logger.debug("Metrics access granted", username=credentials.username)
