from __future__ import annotations

from typing import Any, Dict
from urllib.parse import urlencode

import requests

from quickmail.auth.config import AuthConfig

MAIL_SCOPE = "https://mail.google.com/"
USERINFO_EMAIL_SCOPE = "https://www.googleapis.com/auth/userinfo.email"
SCOPES = (MAIL_SCOPE, USERINFO_EMAIL_SCOPE)


class TokenExchangeError(ValueError):
    pass


class UserinfoError(ValueError):
    pass


def build_authorize_url(cfg: AuthConfig, *, redirect_uri: str, state: str, immediate: bool) -> str:
    """
    Build the provider authorization URL.

    Immediate mode asks the provider to answer without any user interaction
    (`prompt=none`); it fails with an error instead of showing a consent screen.
    """
    if not cfg.client_id:
        raise ValueError("OAuth client ID not configured")

    params = {
        "client_id": cfg.client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(SCOPES),
        "state": state,
        "access_type": "online",
        "prompt": "none" if immediate else "consent",
    }
    return f"{cfg.auth_url}?{urlencode(params)}"


def exchange_code_for_token(cfg: AuthConfig, *, redirect_uri: str, code: str) -> Dict[str, Any]:
    """
    Exchange an authorization code for an access token.
    """
    if not cfg.client_id or not cfg.client_secret:
        raise ValueError("OAuth client ID/secret not configured")

    payload = {
        "client_id": cfg.client_id,
        "client_secret": cfg.client_secret,
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
    }
    try:
        r = requests.post(cfg.token_url, data=payload, timeout=10)
    except requests.RequestException as e:
        raise TokenExchangeError(f"Token exchange failed: {type(e).__name__}") from e
    if r.status_code >= 400:
        # Avoid leaking sensitive info; include minimal context.
        raise TokenExchangeError(f"Token exchange failed (status={r.status_code})")
    try:
        data = r.json()
    except ValueError as e:
        raise TokenExchangeError("Invalid token response") from e
    if not isinstance(data, dict) or not str(data.get("access_token") or "").strip():
        raise TokenExchangeError("Token response missing access_token")
    return data


def fetch_user_email(cfg: AuthConfig, access_token: str) -> str:
    """
    Read the authorized user's email address from the userinfo endpoint.

    The endpoint answers `{"data": {"email": ...}}`; a top-level `email` is accepted too.
    """
    try:
        r = requests.get(
            cfg.userinfo_url,
            params={"alt": "json", "oauth_token": access_token},
            timeout=10,
        )
    except requests.RequestException as e:
        raise UserinfoError(f"Userinfo request failed: {type(e).__name__}") from e
    if r.status_code >= 400:
        raise UserinfoError(f"Userinfo request failed (status={r.status_code})")
    try:
        body = r.json()
    except ValueError as e:
        raise UserinfoError("Invalid userinfo response") from e
    if not isinstance(body, dict):
        raise UserinfoError("Invalid userinfo response")

    data = body.get("data")
    email = data.get("email") if isinstance(data, dict) else None
    email = str(email or body.get("email") or "").strip()
    if "@" not in email:
        raise UserinfoError("Userinfo response missing email")
    return email
