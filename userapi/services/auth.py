from __future__ import annotations

from sqlalchemy.orm import Session

from userapi.api.schemas import AuthResponse, LoginRequest
from userapi.security.auth.jwt_handler import JWTHandler, get_jwt_handler
from userapi.services.users import UsersService
from userapi.utils.exceptions import UnauthorizedError
from userapi.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_ROLES = ["user"]


class AuthService:
    def __init__(self, db: Session, jwt_handler: JWTHandler | None = None) -> None:
        self.users = UsersService(db)
        self.jwt = jwt_handler or get_jwt_handler()

    def login(self, data: LoginRequest) -> AuthResponse:
        email = str(data.email)
        user = self.users.validate_credentials(email, data.password)
        if user is None:
            logger.warning("Login failed", email=email)
            raise UnauthorizedError("Invalid credentials")

        token, expires_at = self.jwt.create_token(
            str(user.id), {"email": user.email, "roles": list(DEFAULT_ROLES)}
        )
        logger.info("User authenticated", user_id=user.id)
        return AuthResponse(
            access_token=token,
            token_type="Bearer",
            expires_at=expires_at,
            user_id=user.id,
        )
