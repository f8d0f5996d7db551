from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from userapi.api.schemas import AuthResponse, LoginRequest, ProfileView
from userapi.db.session import get_db
from userapi.monitoring.metrics.http_metrics import record_app_event
from userapi.security.auth.dependencies import CurrentUserDep
from userapi.services.auth import AuthService
from userapi.utils.exceptions import UnauthorizedError

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> AuthResponse:
    """Authenticate with email/password and receive a bearer token."""
    try:
        response = AuthService(db).login(payload)
    except UnauthorizedError:
        record_app_event("login", status="failure")
        raise
    record_app_event("login")
    return response


@router.get("/profile", response_model=ProfileView)
def profile(user: CurrentUserDep) -> ProfileView:
    """Return the identity carried by the bearer token."""
    return ProfileView(id=user.id, email=user.email, roles=user.roles)
