import uuid

from pydantic import EmailStr, Field

from manifest.schemas.base import CamelModel, UtcDatetime


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: str | None = None


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class RefreshRequest(CamelModel):
    refresh_token: str


class TokenResponse(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class UserResponse(CamelModel):
    id: uuid.UUID
    email: str
    name: str | None
    created_at: UtcDatetime
