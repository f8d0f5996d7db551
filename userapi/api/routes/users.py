"""User CRUD endpoints."""

from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from userapi.api.schemas import UserCreateRequest, UserUpdateRequest, UserView
from userapi.core.config import settings
from userapi.db.session import get_db
from userapi.monitoring.metrics.http_metrics import record_app_event
from userapi.security.auth.dependencies import CurrentUserDep
from userapi.services.users import UsersService
from userapi.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


def get_users_service(db: Session = Depends(get_db)) -> UsersService:
    return UsersService(db)


@router.post("", response_model=UserView, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreateRequest, service: UsersService = Depends(get_users_service)
):
    """Register a new user. Public: no token required."""
    logger.info("Creating user", email=str(payload.email))
    user = service.create(payload)
    record_app_event("user_created")
    logger.info("User created", user_id=user.id)
    return user


@router.get("", response_model=List[UserView])
def list_users(
    _user: CurrentUserDep, service: UsersService = Depends(get_users_service)
):
    users = service.find_all()
    logger.info("Listed users", count=len(users))
    return users


@router.get("/simulate-latency", response_model=List[UserView])
async def list_users_slowly(
    _user: CurrentUserDep, service: UsersService = Depends(get_users_service)
):
    """List users after an artificial delay, to exercise latency histograms."""
    delay_ms = settings.SLOW_QUERY_DELAY_MS
    logger.info("Running slow query", delay_ms=delay_ms)
    users = await service.find_all_with_delay(delay_ms)
    record_app_event("slow_query")
    return users


@router.get("/{id}", response_model=UserView)
def get_user(
    id: int,
    _user: CurrentUserDep,
    service: UsersService = Depends(get_users_service),
):
    return service.find_one(id)


@router.patch("/{id}", response_model=UserView)
def update_user(
    id: int,
    payload: UserUpdateRequest,
    _user: CurrentUserDep,
    service: UsersService = Depends(get_users_service),
):
    user = service.update(id, payload)
    record_app_event("user_updated")
    logger.info("User updated", user_id=user.id)
    return user


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    id: int,
    _user: CurrentUserDep,
    service: UsersService = Depends(get_users_service),
) -> Response:
    service.delete(id)
    record_app_event("user_deleted")
    logger.info("User deleted", user_id=id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
