from __future__ import annotations

import re

from quickmail.auth.forms import RedirectForm, redirect_post, render_form


def test_redirect_post_builds_one_input_per_field() -> None:
    page = redirect_post("", {"user": "x", "token": "y"})

    inputs = re.findall(r"<input [^>]*/>", page)
    assert len(inputs) == 2
    assert '<input type="text" name="user" value="x" />' in inputs
    assert '<input type="text" name="token" value="y" />' in inputs
    assert 'action=""' in page
    assert 'method="post"' in page


def test_redirect_post_submits_on_load() -> None:
    page = redirect_post("/", {"user": "x"})
    assert 'document.getElementById("redirect-form").submit()' in page
    assert 'id="redirect-form"' in page


def test_values_are_escaped() -> None:
    page = redirect_post("/", {"user": '"><script>alert(1)</script>', "token": "a&b"})
    assert "<script>alert(1)</script>" not in page
    assert 'value="&quot;&gt;&lt;script&gt;alert(1)&lt;/script&gt;"' in page
    assert 'value="a&amp;b"' in page


def test_action_is_escaped() -> None:
    page = render_form(RedirectForm(action='/"onmouseover="x', fields={}))
    assert 'action="/&quot;onmouseover=&quot;x"' in page
