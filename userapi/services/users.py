"""User management service."""

from __future__ import annotations

import asyncio
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from userapi.api.schemas import UserCreateRequest, UserUpdateRequest
from userapi.models.user import User
from userapi.security.passwords import hash_password, verify_password
from userapi.services.user_store import UserStore
from userapi.utils.exceptions import ConflictError, InternalServerError, NotFoundError
from userapi.utils.logger import get_logger

logger = get_logger(__name__)

ENTITY = "User"


class UsersService:
    def __init__(self, db: Session) -> None:
        self.store = UserStore(db)

    def create(self, data: UserCreateRequest) -> User:
        email = str(data.email).lower()
        if self.store.get_by_email(email):
            raise ConflictError(ENTITY, "email", email)

        user = User(
            name=data.name,
            email=email,
            password_hash=hash_password(data.password),
        )
        try:
            return self.store.save(user)
        except IntegrityError as e:
            # Lost a race against a concurrent insert of the same email
            raise ConflictError(ENTITY, "email", email) from e
        except SQLAlchemyError as e:
            logger.error("Failed to create user", email=email, error=str(e))
            raise InternalServerError("Failed to create user") from e

    def find_all(self) -> List[User]:
        try:
            return self.store.list()
        except SQLAlchemyError as e:
            logger.error("Failed to list users", error=str(e))
            raise InternalServerError("Failed to list users") from e

    async def find_all_with_delay(self, delay_ms: int) -> List[User]:
        """List users after an artificial delay, to exercise latency metrics."""
        await asyncio.sleep(max(0, delay_ms) / 1000)
        return self.find_all()

    def find_one(self, user_id: int) -> User:
        try:
            user = self.store.get(user_id)
        except SQLAlchemyError as e:
            logger.error("Failed to fetch user", user_id=user_id, error=str(e))
            raise InternalServerError(f"Failed to fetch user {user_id}") from e
        if user is None:
            raise NotFoundError(ENTITY, user_id)
        return user

    def update(self, user_id: int, data: UserUpdateRequest) -> User:
        user = self.find_one(user_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        if "email" in changes:
            email = str(changes["email"]).lower()
            if email != user.email and self.store.get_by_email(email):
                raise ConflictError(ENTITY, "email", email)
            user.email = email
        if "name" in changes:
            user.name = changes["name"]
        if "password" in changes:
            user.password_hash = hash_password(changes["password"])

        try:
            return self.store.save(user)
        except IntegrityError as e:
            raise ConflictError(ENTITY, "email", user.email) from e
        except SQLAlchemyError as e:
            logger.error("Failed to update user", user_id=user_id, error=str(e))
            raise InternalServerError(f"Failed to update user {user_id}") from e

    def delete(self, user_id: int) -> None:
        user = self.find_one(user_id)
        try:
            self.store.delete(user)
        except SQLAlchemyError as e:
            logger.error("Failed to delete user", user_id=user_id, error=str(e))
            raise InternalServerError(f"Failed to delete user {user_id}") from e

    def validate_credentials(self, email: str, password: str) -> Optional[User]:
        user = self.store.get_by_email(email.lower())
        if user is None or not verify_password(password, user.password_hash):
            return None
        return user
