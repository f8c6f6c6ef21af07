"""
Authorization redirector.

Drives the sign-in page through its states:

    UNAUTHORIZED --(token granted)--> AUTHORIZED --(email read)--> SUBMITTED
         ^                                 |
         +----(error / lookup failure)-----+

The page starts in UNAUTHORIZED and asks the provider for a token silently. A granted
token is used to look up the account's email, and `{user, token}` is then POSTed to the
home page. Any failure reveals the authorize control, whose click retries
interactively. SUBMITTED is terminal: the POST navigates away, so later results are
ignored and at most one form is ever submitted.

The redirector never touches HTTP or the DOM directly; all side effects go through
the `Page` and `IdentityProvider` ports.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Protocol

from quickmail.auth.forms import RedirectForm
from quickmail.auth.models import AuthResult
from quickmail.auth.oauth import UserinfoError

logger = logging.getLogger(__name__)

# Errors a provider returns when it cannot answer without user interaction.
SILENT_FAILURE_ERRORS = frozenset(
    {
        "immediate_failed",
        "login_required",
        "consent_required",
        "interaction_required",
        "account_selection_required",
    }
)


class AuthState(str, Enum):
    UNAUTHORIZED = "unauthorized"
    AUTHORIZED = "authorized"
    SUBMITTED = "submitted"


class Page(Protocol):
    """UI state owned by the sign-in page."""

    def show_authorize_button(self) -> None:
        """Reveal the authorize control; clicking it calls `AuthRedirector.authorize_clicked`."""

    def submit_form(self, form: RedirectForm) -> None:
        """Attach `form` to the page and submit it, navigating away."""


class IdentityProvider(Protocol):
    def authorize(self, immediate: bool) -> None:
        """
        Start an authorization request.

        The outcome is delivered later to `AuthRedirector.handle_auth_result`.
        """

    def fetch_email(self, access_token: str) -> str:
        """Return the email address of the account `access_token` was issued for."""


class AuthRedirector:
    def __init__(self, page: Page, provider: IdentityProvider, *, home: str = ""):
        self.page = page
        self.provider = provider
        self.home = home
        self.state = AuthState.UNAUTHORIZED

    def start(self) -> None:
        """Page-load trigger: try to authorize without user interaction."""
        self._authorize(immediate=True)

    def authorize_clicked(self) -> None:
        """Click handler of the authorize control: interactive authorization."""
        self._authorize(immediate=False)

    def _authorize(self, *, immediate: bool) -> None:
        if self.state is AuthState.SUBMITTED:
            logger.debug("Authorization already submitted; ignoring request (immediate=%s)", immediate)
            return
        logger.debug("Requesting authorization (immediate=%s)", immediate)
        self.provider.authorize(immediate)

    def handle_auth_result(self, result: Optional[AuthResult]) -> AuthState:
        if self.state is AuthState.SUBMITTED:
            logger.debug("Ignoring authorization result after submission")
            return self.state

        if result is None or not result.ok:
            self._reveal_authorize(result)
            return self.state

        self.state = AuthState.AUTHORIZED
        token = result.access_token or ""
        try:
            email = self.provider.fetch_email(token)
        except UserinfoError as e:
            logger.warning("Userinfo lookup failed: %s", str(e))
            self._reveal_authorize(None)
            return self.state

        self.state = AuthState.SUBMITTED
        logger.info("Authorized %s; submitting redirect form", email)
        self.page.submit_form(RedirectForm(action=self.home, fields={"user": email, "token": token}))
        return self.state

    def _reveal_authorize(self, result: Optional[AuthResult]) -> None:
        self.state = AuthState.UNAUTHORIZED
        if result is None:
            logger.info("No usable authorization result; showing authorize control")
        elif result.immediate or result.error in SILENT_FAILURE_ERRORS:
            logger.info("Silent authorization unavailable (%s); showing authorize control", result.error)
        else:
            logger.warning("Authorization declined (%s); showing authorize control", result.error)
        self.page.show_authorize_button()
