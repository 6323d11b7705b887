from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from nova_api.schemas.user import UserPublic


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, description="Full name of the user")
    email: EmailStr = Field(..., description="Unique email address")
    phone: str = Field(..., min_length=5, max_length=30, description="Unique phone number")
    password: str = Field(..., min_length=6, max_length=128, description="Account password (min 6 chars)")
    role: str = Field("passenger", pattern="^(passenger|driver)$", description="User role: passenger or driver")


class LoginRequest(BaseModel):
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=1, max_length=128, description="Account password")


class GoogleAuthRequest(BaseModel):
    token: str = Field(..., min_length=1, description="Google ID token from the client sign-in flow")
    name: Optional[str] = Field(default=None, max_length=200)
    picture: Optional[str] = Field(default=None, max_length=2000)


class AuthResponse(BaseModel):
    success: bool = True
    token: str = Field(..., description="JWT access token")
    user: UserPublic


class TokenResponse(BaseModel):
    success: bool = True
    token: str = Field(..., description="JWT access token")
