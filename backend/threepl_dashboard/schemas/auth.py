"""Pydantic schemas for authentication and user administration."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field

Role = Literal["admin", "client"]


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: EmailStr
    role: Role
    client_id: Optional[str] = None
    created_at: Optional[datetime] = None


class AuthResponse(BaseModel):
    user: UserOut
    token: str = Field(..., description="Signed bearer token")


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    role: Role = "client"
    client_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("client_id", "clientId"))


class UserUpdateRequest(BaseModel):
    username: Optional[str] = Field(default=None, min_length=2, max_length=255)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=6, max_length=128)
    role: Optional[Role] = None
    client_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("client_id", "clientId"))


class MessageResponse(BaseModel):
    message: str
