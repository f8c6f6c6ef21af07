from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

DEFAULT_CLIENT_ID = "1057206095862-hdrc2h81rh8ecbtnep68c7e7k65bir21.apps.googleusercontent.com"
DEFAULT_AUTH_URL = "https://accounts.google.com/o/oauth2/auth"
DEFAULT_TOKEN_URL = "https://accounts.google.com/o/oauth2/token"
DEFAULT_USERINFO_URL = "https://www.googleapis.com/userinfo/email"


@dataclass(frozen=True)
class AuthConfig:
    # OAuth client
    client_id: Optional[str]
    client_secret: Optional[str]
    auth_url: str
    token_url: str
    userinfo_url: str

    # Session configuration
    public_base_url: Optional[str]  # Required for the OAuth redirect_uri
    session_secret: Optional[str]  # Required for session signing
    session_ttl_seconds: int
    cookie_secure: bool

    @property
    def oauth_enabled(self) -> bool:
        """OAuth needs a client id, a secret for the code exchange, and a callback base URL."""
        return bool(self.client_id and self.client_secret and self.public_base_url)


def _env(name: str, default: str = "") -> Optional[str]:
    return (os.getenv(name, "") or default).strip() or None


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load authorization configuration from environment variables.

    The client id defaults to the registered quickmail application; the secret,
    public base URL and session secret have no defaults.
    """
    public_base_url = _env("AUTH_PUBLIC_BASE_URL")
    cookie_secure_env = (os.getenv("AUTH_COOKIE_SECURE", "") or "").strip().lower()
    if cookie_secure_env in ("1", "true", "yes", "on"):
        cookie_secure = True
    elif cookie_secure_env in ("0", "false", "no", "off"):
        cookie_secure = False
    else:
        # Default: secure cookies when base URL is https; otherwise allow local dev.
        cookie_secure = True if (public_base_url or "").startswith("https://") else False

    ttl = int(float((os.getenv("AUTH_SESSION_TTL_SECONDS", "") or "43200").strip() or "43200"))  # 12h default
    if ttl <= 60:
        ttl = 60

    return AuthConfig(
        client_id=_env("OAUTH_CLIENT_ID", DEFAULT_CLIENT_ID),
        client_secret=_env("OAUTH_CLIENT_SECRET"),
        auth_url=_env("OAUTH_AUTH_URL", DEFAULT_AUTH_URL) or DEFAULT_AUTH_URL,
        token_url=_env("OAUTH_TOKEN_URL", DEFAULT_TOKEN_URL) or DEFAULT_TOKEN_URL,
        userinfo_url=_env("OAUTH_USERINFO_URL", DEFAULT_USERINFO_URL) or DEFAULT_USERINFO_URL,
        public_base_url=public_base_url.rstrip("/") if public_base_url else None,
        session_secret=_env("AUTH_SESSION_SECRET"),
        session_ttl_seconds=ttl,
        cookie_secure=cookie_secure,
    )
