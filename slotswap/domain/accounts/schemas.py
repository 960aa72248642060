"""Account schemas - Pydantic models for registration and login"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_email


class RegisterRequest(BaseModel):
    """Schema for creating an account"""

    name: str = Field(min_length=1, max_length=255)
    email: str
    password: str = Field(min_length=8, max_length=128)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("name")
    @classmethod
    def check_name(cls, v):
        if not v.strip():
            raise ValueError("Name is required")
        return v.strip()


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    created_at: datetime


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
