from __future__ import annotations

from typing import Optional

from fastapi import Request

from quickmail.auth.config import load_auth_config
from quickmail.auth.models import AuthUser
from quickmail.auth.session import decode_session, session_cookie_name


def authenticate_request(request: Request) -> Optional[AuthUser]:
    """
    Return the signed-in user for a request, or None.

    Only the signed session cookie is consulted; a missing or tampered cookie is anonymous.
    """
    cfg = load_auth_config()
    return decode_session(cfg, request.cookies.get(session_cookie_name(cfg)))
