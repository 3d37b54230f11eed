from datetime import date

from pydantic import BaseModel, EmailStr, Field, field_validator

from vendorflow.models.user import UserRole


class RegisterRequest(BaseModel):
    """Planner sign-up; creates the wedding workspace at the same time."""

    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    full_name: str = Field(min_length=2, max_length=120)
    wedding_name: str = Field(min_length=2, max_length=120)
    wedding_date: date | None = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)


class JoinRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    full_name: str = Field(min_length=2, max_length=120)
    invite_code: str = Field(min_length=6, max_length=32)

    @field_validator("invite_code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        return value.strip().upper()


class UserResponse(BaseModel):
    id: str
    email: EmailStr
    full_name: str
    role: UserRole
    wedding_id: str
    wedding_name: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class AuthResponse(BaseModel):
    token: TokenResponse
    user: UserResponse


class InviteResponse(BaseModel):
    invite_code: str
    message: str


class WeddingMember(BaseModel):
    id: str
    full_name: str
    email: EmailStr
    role: UserRole


class WeddingWorkspaceResponse(BaseModel):
    wedding_id: str
    name: str
    wedding_date: date | None = None
    invite_code: str | None = None
    members: list[WeddingMember]
