"""
Pytest config.

Tests import the local `quickmail/` package straight from the checkout. When a
global `pytest` entrypoint is used without an editable install, the repo root is
not reliably on sys.path during collection, so we pin it here.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()


@pytest.fixture(autouse=True)
def _fresh_auth_config(monkeypatch: pytest.MonkeyPatch):
    """
    `load_auth_config()` is cached process-wide. Start each test from a clean
    environment and an empty cache so env tweaks never leak between tests.
    """
    from quickmail.auth.config import load_auth_config

    for name in (
        "OAUTH_CLIENT_ID",
        "OAUTH_CLIENT_SECRET",
        "OAUTH_AUTH_URL",
        "OAUTH_TOKEN_URL",
        "OAUTH_USERINFO_URL",
        "AUTH_PUBLIC_BASE_URL",
        "AUTH_SESSION_SECRET",
        "AUTH_SESSION_TTL_SECONDS",
        "AUTH_COOKIE_SECURE",
    ):
        monkeypatch.delenv(name, raising=False)
    load_auth_config.cache_clear()
    yield
    load_auth_config.cache_clear()


@pytest.fixture
def oauth_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Configure a complete (non-https) OAuth setup."""
    from quickmail.auth.config import load_auth_config

    monkeypatch.setenv("OAUTH_CLIENT_ID", "test-client-id")
    monkeypatch.setenv("OAUTH_CLIENT_SECRET", "test-client-secret")
    monkeypatch.setenv("AUTH_PUBLIC_BASE_URL", "http://testserver")
    monkeypatch.setenv("AUTH_SESSION_SECRET", "test-secret-key-for-testing-purposes-only")
    load_auth_config.cache_clear()
