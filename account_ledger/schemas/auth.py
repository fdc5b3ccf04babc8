"""
Pydantic schemas for authentication endpoints (signup and login).

Pydantic validates the shape of incoming data: account numbers are 4-10
digits and PINs exactly 4 digits. Anything else is a 422 before our code
runs.
"""

from pydantic import BaseModel, Field


class SignupRequest(BaseModel):
    """Request body for POST /auth/signup."""
    account_number: str = Field(pattern=r"^\d{4,10}$")
    name: str = Field(min_length=1, max_length=100)
    pin: str = Field(pattern=r"^\d{4}$")
    opening_balance_cents: int = Field(default=0, ge=0, description="Initial deposit in cents")


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""
    account_number: str = Field(min_length=1, max_length=10)
    pin: str = Field(min_length=1, max_length=10)


class TokenResponse(BaseModel):
    """Response body for signup/login, carries the JWT."""
    account_number: str
    name: str
    token: str
    token_type: str = "bearer"
