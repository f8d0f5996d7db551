"""Pydantic request/response schemas for the users and auth API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class BaseApiModel(BaseModel):
    """Base class enabling alias-friendly export."""

    model_config = ConfigDict(populate_by_name=True)


class UserCreateRequest(BaseApiModel):
    name: str = Field(min_length=1, max_length=255, examples=["John Doe"])
    email: EmailStr = Field(examples=["john@example.com"])
    password: str = Field(min_length=8, max_length=72, examples=["password123"])


class UserUpdateRequest(BaseApiModel):
    name: Optional[str] = Field(default=None, min_length=3, max_length=255)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=8, max_length=72)


class UserView(BaseApiModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    name: str
    email: str
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")


class LoginRequest(BaseApiModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)


class AuthResponse(BaseApiModel):
    access_token: str
    token_type: str = "Bearer"
    expires_at: int
    user_id: int


class ProfileView(BaseApiModel):
    id: int
    email: Optional[str] = None
    roles: List[str] = []


class HealthResponse(BaseApiModel):
    status: str
    timestamp: datetime


class ErrorResponse(BaseApiModel):
    """Shape of every error body (documented for OpenAPI)."""

    status_code: int = Field(alias="statusCode")
    timestamp: str
    path: str
    message: str | List[str]
    error: str
