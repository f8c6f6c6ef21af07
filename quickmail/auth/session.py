from __future__ import annotations

import json
from dataclasses import asdict
from typing import Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

from quickmail.auth.config import AuthConfig
from quickmail.auth.models import AuthUser


def session_cookie_name(cfg: AuthConfig) -> str:
    # `__Host-` requires Secure + Path=/ + no Domain; browsers may reject it on HTTP.
    return "__Host-quickmail_session" if cfg.cookie_secure else "quickmail_session"


SESSION_SALT = "quickmail-session-v1"


def _serializer(cfg: AuthConfig) -> Optional[URLSafeTimedSerializer]:
    if not cfg.session_secret:
        return None
    return URLSafeTimedSerializer(secret_key=cfg.session_secret, salt=SESSION_SALT)


def encode_session(cfg: AuthConfig, user: AuthUser) -> Optional[str]:
    s = _serializer(cfg)
    if s is None:
        return None
    # The access token never goes into the cookie.
    raw = json.dumps(asdict(user), separators=(",", ":"), sort_keys=True)
    return s.dumps(raw)


def decode_session(cfg: AuthConfig, value: str | None) -> Optional[AuthUser]:
    if not value:
        return None
    s = _serializer(cfg)
    if s is None:
        return None
    try:
        raw = s.loads(value, max_age=cfg.session_ttl_seconds)
        data = json.loads(raw)
        if not isinstance(data, dict):
            return None
        email = str(data.get("email") or "").strip()
        if "@" not in email:
            return None
        provider = str(data.get("provider") or "").strip() or "google"
        return AuthUser(email=email, provider=provider)
    except (BadSignature, BadTimeSignature, ValueError):
        return None


def session_cookie_kwargs(cfg: AuthConfig, value: Optional[str]) -> dict:
    """`Response.set_cookie` kwargs; an empty value expires the cookie."""
    return {
        "key": session_cookie_name(cfg),
        "value": value or "",
        "max_age": cfg.session_ttl_seconds if value else 0,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }
