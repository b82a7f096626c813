"""Pydantic schemas for the login endpoint."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator


class LoginRequest(BaseModel):
    """Login credentials. Either ``email`` or ``username`` identifies the user."""

    email: str | None = Field(
        default=None,
        description="Email address used as login identifier.",
        max_length=320,
    )
    username: str | None = Field(
        default=None,
        description="Username, accepted when no email is given.",
        max_length=150,
    )
    password: str = Field(..., min_length=1, max_length=1024)

    @model_validator(mode="after")
    def _require_identifier(self) -> "LoginRequest":
        if not (self.email or "").strip() and not (self.username or "").strip():
            raise ValueError("email or username is required")
        return self

    @property
    def identifier(self) -> str:
        return (self.email or "").strip() or (self.username or "").strip()


class LoginResponse(BaseModel):
    status: Literal["ok"] = "ok"
    identifier: str = Field(..., description="Normalized login identifier.")


class RegisterRequest(LoginRequest):
    """New account credentials; same identifier rules as login."""

    password: str = Field(..., min_length=8, max_length=1024)


class RegisterResponse(BaseModel):
    status: Literal["created"] = "created"
    identifier: str = Field(..., description="Normalized identifier of the new account.")
