from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AuthUser:
    """Signed-in user, as carried by the session cookie."""

    email: str
    provider: str = "google"


@dataclass(frozen=True)
class AuthResult:
    """Outcome of one authorization attempt, as reported by the identity provider."""

    error: Optional[str] = None
    access_token: Optional[str] = None
    immediate: bool = False

    @property
    def ok(self) -> bool:
        return not self.error and bool(self.access_token)
