import re
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

Warehouse = Literal["US", "JP", "EU", "AU"]
Tier = Literal["STANDARD", "PREMIUM", "ENTERPRISE"]


def _normalize_email(v: str) -> str:
    v = v.strip().lower()
    if not EMAIL_RE.match(v):
        raise ValueError("Invalid email address")
    return v


class RegisterDTO(BaseModel):
    email: str = Field(max_length=254)
    password: str = Field(min_length=1, max_length=256)
    company_name: str = Field(min_length=2, max_length=200)
    contact_name: str = Field(default="", max_length=200)
    tier: Tier = "STANDARD"
    warehouses: list[Warehouse] = Field(default_factory=lambda: ["US"], min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)


class LoginDTO(BaseModel):
    email: str = Field(max_length=254)
    password: str = Field(min_length=1, max_length=256)
    warehouse: Optional[Warehouse] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)


class RefreshDTO(BaseModel):
    refresh_token: str = Field(min_length=1)


class LogoutDTO(BaseModel):
    refresh_token: Optional[str] = None
    session_token: Optional[str] = None


class PasswordStrengthDTO(BaseModel):
    password: str = Field(min_length=1, max_length=256)
    email: Optional[str] = None
    company_name: Optional[str] = None
