from __future__ import annotations

from dataclasses import dataclass

from fastapi import Header, HTTPException, status

from app.core.config import settings


@dataclass(frozen=True)
class Identity:
    role: str
    email: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin" or "admin" in self.email


def check_api_key(x_api_key: str | None) -> None:
    if settings.auth_mode != "protected" or not settings.api_key:
        return
    if x_api_key != settings.api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Please provide a valid API key.",
        )


def require_screening_access(
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    x_user_role: str | None = Header(default=None, alias="X-User-Role"),
    x_user_email: str | None = Header(default=None, alias="X-User-Email"),
) -> Identity:
    check_api_key(x_api_key)
    identity = Identity(
        role=(x_user_role or "").strip().lower(),
        email=(x_user_email or "").strip().lower(),
    )
    if settings.screening_require_admin and not identity.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="The bulk resume scanner is available to admin accounts only.",
        )
    return identity
