#!/usr/bin/env python3
"""
Seeds the database with a demo user that can log in right away.
"""
import os

from sqlalchemy.orm import Session

from userapi.api.schemas import UserCreateRequest
from userapi.db.session import SessionLocal, init_db
from userapi.models.user import User
from userapi.services.users import UsersService
from userapi.utils.logger import get_logger

logger = get_logger(__name__)

DEMO_EMAIL = os.getenv("DEMO_USER_EMAIL", "demo@example.com")
DEMO_PASSWORD = os.getenv("DEMO_USER_PASSWORD", "password123")


def seed_demo_user(db: Session) -> User:
    """
    Creates the demo user if one doesn't already exist.

    Args:
        db: The database session.

    Returns:
        The existing or newly created user.
    """
    service = UsersService(db)
    existing = service.store.get_by_email(DEMO_EMAIL)
    if existing:
        logger.info("Demo user already exists", user_id=existing.id)
        return existing

    user = service.create(
        UserCreateRequest(name="Demo User", email=DEMO_EMAIL, password=DEMO_PASSWORD)
    )
    logger.info("Demo user created", user_id=user.id, email=user.email)
    return user


def main():
    logger.info("--- Starting Database Seeding ---")
    init_db()
    db = SessionLocal()
    try:
        seed_demo_user(db)
        logger.info("--- Database Seeding Completed ---")
    except Exception as e:
        logger.error("Database seeding failed", error=str(e), exc_info=True)
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
