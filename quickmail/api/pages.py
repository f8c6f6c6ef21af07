from __future__ import annotations

import html
from typing import Optional

from fastapi.responses import HTMLResponse, RedirectResponse, Response

from quickmail.auth.forms import RedirectForm, render_form

AUTHORIZE_PATH = "/auth/authorize?immediate=false"

_LAYOUT = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>quickmail</title></head>
<body>
{content}
</body>
</html>
"""


def render_signin(*, authorize_visible: bool) -> str:
    visibility = "" if authorize_visible else "hidden"
    content = (
        f'<a id="authorize-button" href="{html.escape(AUTHORIZE_PATH, quote=True)}" '
        f'style="visibility: {visibility}">Authorize</a>'
    )
    return _LAYOUT.format(content=content)


def render_home(email: str) -> str:
    content = f'<p id="signed-in">Signed in as {html.escape(email)}</p>'
    return _LAYOUT.format(content=content)


class HtmlPage:
    """
    `Page` port backed by one HTTP response.

    Each redirector transition replaces the pending response; the route returns
    whatever the last transition left behind.
    """

    def __init__(self) -> None:
        self.response: Optional[Response] = None

    def navigate(self, url: str) -> None:
        self.response = RedirectResponse(url=url, status_code=302)

    def show_authorize_button(self) -> None:
        self.response = HTMLResponse(render_signin(authorize_visible=True))

    def submit_form(self, form: RedirectForm) -> None:
        self.response = HTMLResponse(render_form(form))
