from __future__ import annotations

import html
from dataclasses import dataclass, field
from typing import Dict, Mapping

_REDIRECT_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Signing in</title></head>
<body>
<form id="redirect-form" action="{action}" method="{method}" style="display: none">
{inputs}
</form>
<script>document.getElementById("redirect-form").submit();</script>
</body>
</html>
"""


@dataclass(frozen=True)
class RedirectForm:
    """A form that is submitted as soon as the page holding it loads."""

    action: str
    fields: Dict[str, str] = field(default_factory=dict)
    method: str = "post"


def render_form(form: RedirectForm) -> str:
    """Render a self-submitting HTML page for `form`. Names and values are escaped."""
    inputs = "\n".join(
        '<input type="text" name="{}" value="{}" />'.format(
            html.escape(str(name), quote=True), html.escape(str(value), quote=True)
        )
        for name, value in form.fields.items()
    )
    return _REDIRECT_PAGE.format(
        action=html.escape(form.action, quote=True),
        method=html.escape(form.method, quote=True),
        inputs=inputs,
    )


def redirect_post(page: str, args: Mapping[str, str]) -> str:
    """
    Build a page that POSTs `args` to `page` immediately on load.

    Args:
        page: Target URL ("" targets the current page)
        args: Field name -> value; one text input per entry

    Returns:
        The HTML document to serve.
    """
    return render_form(RedirectForm(action=page, fields=dict(args)))
