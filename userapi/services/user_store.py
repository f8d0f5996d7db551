"""Persistent storage helpers for users."""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy.orm import Session

from userapi.models.user import User


class UserStore:
    """Database-backed store for user accounts."""

    def __init__(self, db_session: Session) -> None:
        self._db = db_session

    def list(self) -> List[User]:
        return self._db.query(User).order_by(User.id).all()

    def get(self, user_id: int) -> Optional[User]:
        return self._db.get(User, user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        return self._db.query(User).filter(User.email == email).first()

    def save(self, user: User) -> User:
        """Persist (create or update) a user, rolling back on failure."""
        try:
            self._db.add(user)
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise
        self._db.refresh(user)
        return user

    def delete(self, user: User) -> None:
        try:
            self._db.delete(user)
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise
