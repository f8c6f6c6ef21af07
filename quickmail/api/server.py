"""
quickmail web front-end.

Hosts the sign-in page (authorization redirector), receives the `{user, token}` POST
it produces, and serves sanitized message fragments to signed-in users.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import os
import time
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from pydantic import BaseModel

from quickmail.api.pages import HtmlPage, render_home
from quickmail.auth.config import AuthConfig, load_auth_config
from quickmail.auth.deps import authenticate_request
from quickmail.auth.models import AuthResult, AuthUser
from quickmail.auth.oauth import (
    TokenExchangeError,
    UserinfoError,
    build_authorize_url,
    exchange_code_for_token,
    fetch_user_email,
)
from quickmail.auth.redirector import AuthRedirector, AuthState
from quickmail.auth.session import encode_session, session_cookie_kwargs
from quickmail.auth.util import random_token
from quickmail.mail.fragments import get_fragment_store
from quickmail.mail.parse import MailParseError, gmail_link, parse_mail

logger = logging.getLogger(__name__)

app = FastAPI(title="quickmail")

HOME_PATH = "/"
CALLBACK_PATH = "/auth/callback"

_OAUTH_COOKIE_PATH = "/auth"
_OAUTH_TTL_SECONDS = 10 * 60
_STATE_COOKIE = "quickmail_oauth_state"
_IMMEDIATE_COOKIE = "quickmail_oauth_immediate"
# Binds the sign-in POST to the callback that produced it.
_SIGNIN_COOKIE = "quickmail_signin"


def _oauth_cookie_kwargs(
    cfg: AuthConfig, *, key: str, value: str, max_age: int, path: str = _OAUTH_COOKIE_PATH
) -> dict:
    return {
        "key": key,
        "value": value,
        "max_age": max_age,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": path,
    }


def _oauth_cookie_clear_kwargs(cfg: AuthConfig, *, key: str, path: str = _OAUTH_COOKIE_PATH) -> dict:
    return _oauth_cookie_kwargs(cfg, key=key, value="", max_age=0, path=path)


def _token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _redirect_uri(cfg: AuthConfig) -> str:
    base = (cfg.public_base_url or "").strip().rstrip("/")
    if not base:
        raise HTTPException(status_code=500, detail="AUTH_PUBLIC_BASE_URL is required for OAuth")
    return f"{base}{CALLBACK_PATH}"


def _require_oauth(cfg: AuthConfig) -> None:
    if not cfg.oauth_enabled:
        raise HTTPException(status_code=503, detail="OAuth is not configured")


class MessagePreview(BaseModel):
    subject: str
    sender: str
    date: Optional[str] = None
    message_id: str
    recipients: List[str]
    named_recipients: List[str]
    body_link: str
    gmail_link: Optional[str] = None


class PreviewResponse(BaseModel):
    ok: bool = True
    message: MessagePreview


def _is_public_path(path: str) -> bool:
    # The sign-in page, its POST target and the OAuth legs must be reachable without a session.
    if path in ("/healthz", HOME_PATH):
        return True
    return path.startswith("/auth/")


class OAuthProvider:
    """`IdentityProvider` port that authorizes by redirecting the browser to the provider."""

    def __init__(self, cfg: AuthConfig, page: HtmlPage):
        self.cfg = cfg
        self.page = page
        self.pending: Optional[Tuple[str, bool]] = None  # (state, immediate)

    def authorize(self, immediate: bool) -> None:
        state = random_token(32)
        url = build_authorize_url(self.cfg, redirect_uri=_redirect_uri(self.cfg), state=state, immediate=immediate)
        self.pending = (state, immediate)
        self.page.navigate(url)

    def fetch_email(self, access_token: str) -> str:
        return fetch_user_email(self.cfg, access_token)


def _redirector(cfg: AuthConfig) -> Tuple[AuthRedirector, HtmlPage, OAuthProvider]:
    page = HtmlPage()
    provider = OAuthProvider(cfg, page)
    return AuthRedirector(page, provider, home=HOME_PATH), page, provider


def _start_authorization(*, immediate: bool) -> Response:
    cfg = load_auth_config()
    _require_oauth(cfg)

    redirector, page, provider = _redirector(cfg)
    if immediate:
        redirector.start()
    else:
        redirector.authorize_clicked()
    if page.response is None or provider.pending is None:
        raise HTTPException(status_code=500, detail="Authorization did not start")

    # A new attempt replaces any pending one: only the latest state can complete.
    state, pending_immediate = provider.pending
    resp = page.response
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**_oauth_cookie_kwargs(cfg, key=_STATE_COOKIE, value=state, max_age=_OAUTH_TTL_SECONDS))
    resp.set_cookie(
        **_oauth_cookie_kwargs(
            cfg, key=_IMMEDIATE_COOKIE, value="1" if pending_immediate else "0", max_age=_OAUTH_TTL_SECONDS
        )
    )
    return resp


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming HTTP requests."""
    start_time = time.time()
    logger.debug("%s %s", request.method, request.url.path)
    try:
        path = request.url.path or ""

        if request.method == "OPTIONS" or _is_public_path(path):
            response = await call_next(request)
            process_time = time.time() - start_time
            logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
            return response

        # Fail closed: anything not explicitly public requires a session.
        user = authenticate_request(request)
        if user is None:
            return JSONResponse(status_code=401, content={"detail": "Unauthorized"})
        request.state.user = user

        response = await call_next(request)
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
        raise


@app.get("/healthz")
def healthz() -> Dict[str, Any]:
    return {"ok": True}


@app.get("/")
async def home(request: Request) -> Response:
    """Signed-in page, or the page-load trigger of silent authorization."""
    user = authenticate_request(request)
    if user is not None:
        return HTMLResponse(render_home(user.email))
    return _start_authorization(immediate=True)


@app.get("/auth/authorize")
async def auth_authorize(immediate: bool = Query(False)) -> Response:
    """Target of the authorize control (interactive unless `immediate` is set)."""
    return _start_authorization(immediate=immediate)


@app.get(CALLBACK_PATH)
async def auth_callback(
    request: Request,
    state: str = Query(""),
    code: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
) -> Response:
    """Provider callback: turn the outcome into an AuthResult and let the redirector react."""
    cfg = load_auth_config()
    _require_oauth(cfg)

    cookie_state = (request.cookies.get(_STATE_COOKIE) or "").strip()
    if not cookie_state or cookie_state != (state or "").strip():
        raise HTTPException(status_code=400, detail="Invalid OAuth state")
    immediate = request.cookies.get(_IMMEDIATE_COOKIE) == "1"

    if error or not code:
        result = AuthResult(error=error or "missing_code", immediate=immediate)
    else:
        try:
            tokens = await asyncio.to_thread(
                exchange_code_for_token, cfg, redirect_uri=_redirect_uri(cfg), code=code
            )
            result = AuthResult(access_token=str(tokens["access_token"]), immediate=immediate)
        except TokenExchangeError as e:
            logger.warning("Token exchange failed: %s", str(e))
            result = AuthResult(error="token_exchange_failed", immediate=immediate)

    redirector, page, _provider = _redirector(cfg)
    outcome = await asyncio.to_thread(redirector.handle_auth_result, result)
    if page.response is None:
        raise HTTPException(status_code=500, detail="Authorization result was not handled")

    resp = page.response
    resp.headers["Cache-Control"] = "no-store"
    # The state is single-use; a replayed callback cannot submit a second form.
    resp.set_cookie(**_oauth_cookie_clear_kwargs(cfg, key=_STATE_COOKIE))
    resp.set_cookie(**_oauth_cookie_clear_kwargs(cfg, key=_IMMEDIATE_COOKIE))
    if outcome is AuthState.SUBMITTED and result.access_token:
        resp.set_cookie(
            **_oauth_cookie_kwargs(
                cfg,
                key=_SIGNIN_COOKIE,
                value=_token_digest(result.access_token),
                max_age=_OAUTH_TTL_SECONDS,
                path=HOME_PATH,
            )
        )
    return resp


@app.post("/")
async def home_signin(request: Request) -> Response:
    """Receive the redirect form: verify the token belongs to `user`, then start a session."""
    cfg = load_auth_config()

    form = parse_qs((await request.body()).decode("utf-8", errors="replace"))
    user = (form.get("user") or [""])[0].strip()
    token = (form.get("token") or [""])[0].strip()
    if not user or not token:
        raise HTTPException(status_code=400, detail="Missing user or token")

    # Only a form produced by our own callback may start a session (login CSRF).
    binding = request.cookies.get(_SIGNIN_COOKIE) or ""
    if not binding or not hmac.compare_digest(binding, _token_digest(token)):
        logger.warning("Sign-in POST without a matching callback (posted=%s)", user)
        raise HTTPException(status_code=403, detail="Sign-in was not started here")

    try:
        email = await asyncio.to_thread(fetch_user_email, cfg, token)
    except UserinfoError as e:
        logger.warning("Sign-in token rejected: %s", str(e))
        raise HTTPException(status_code=401, detail="Invalid token")
    if email.lower() != user.lower():
        logger.warning("Sign-in user mismatch (posted=%s)", user)
        raise HTTPException(status_code=403, detail="Token does not match user")

    session_value = encode_session(cfg, AuthUser(email=email))
    if not session_value:
        raise HTTPException(status_code=500, detail="Session signing is not configured (AUTH_SESSION_SECRET)")

    resp = RedirectResponse(url=HOME_PATH, status_code=303)
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**session_cookie_kwargs(cfg, session_value))
    resp.set_cookie(**_oauth_cookie_clear_kwargs(cfg, key=_SIGNIN_COOKIE, path=HOME_PATH))
    return resp


@app.post("/auth/logout")
async def auth_logout() -> JSONResponse:
    cfg = load_auth_config()
    resp = JSONResponse(content={"ok": True})
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**session_cookie_kwargs(cfg, None))
    return resp


@app.get("/api/me")
async def me(request: Request) -> Dict[str, Any]:
    user = getattr(request.state, "user", None)
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return {"ok": True, "user": {"provider": user.provider, "email": user.email}}


@app.post("/api/messages/preview")
async def preview_message(request: Request, msgid: Optional[str] = Query(None)) -> PreviewResponse:
    """Parse a raw RFC 822 message and stash its sanitized body as a one-time fragment."""
    raw = await request.body()
    try:
        parsed = parse_mail(raw, get_fragment_store())
    except MailParseError as e:
        raise HTTPException(status_code=400, detail=str(e))

    link = None
    if msgid:
        try:
            link = gmail_link(msgid)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    return PreviewResponse(
        message=MessagePreview(
            subject=parsed.subject,
            sender=parsed.sender,
            date=parsed.date.isoformat() if parsed.date else None,
            message_id=parsed.message_id,
            recipients=parsed.recipients,
            named_recipients=parsed.named_recipients,
            body_link=parsed.body_link,
            gmail_link=link,
        )
    )


@app.get("/fragment")
async def fragment(key: str = Query("")) -> HTMLResponse:
    return HTMLResponse(content=get_fragment_store().pop(key))


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    import uvicorn

    # Configure logging for the application
    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    logger.info("Starting quickmail on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
