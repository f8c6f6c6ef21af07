from __future__ import annotations

from datetime import datetime, timedelta
from email import message_from_bytes

import pytest

from quickmail.mail.fragments import FragmentStore
from quickmail.mail.parse import (
    PARSE_FAILURE_NOTICE,
    TEXT_HTML,
    TEXT_PLAIN,
    MailParseError,
    gmail_link,
    parse_content,
    parse_mail,
)

HTML_MAIL = b"""From: Alice <alice@example.com>
To: Bob <bob@example.com>, alice@example.com
Cc: Carol <carol@example.com>
Subject: Lunch
Date: Tue, 1 Oct 2013 10:30:00 -0700
Message-ID: <m1@example.com>
Content-Type: text/html; charset=utf-8

<p>Lunch at <a href="http://example.com/menu">noon</a>?</p><script>steal()</script>
"""

PLAIN_MAIL = b"""From: alice@example.com
To: bob@example.com
Subject: Plain
Content-Type: text/plain; charset=us-ascii

1 < 2 & 3 > 2
"""

MULTIPART_MAIL = b"""From: alice@example.com
To: bob@example.com
Subject: Both
MIME-Version: 1.0
Content-Type: multipart/alternative; boundary="XYZ"

--XYZ
Content-Type: text/plain; charset=utf-8

plain version
--XYZ
Content-Type: text/html; charset=utf-8

<b>html version</b>
--XYZ--
"""


def _body(store: FragmentStore, link: str) -> str:
    assert link.startswith("fragment?key=")
    return store.pop(link.split("=", 1)[1])


def test_html_body_is_sanitized_and_stored_once() -> None:
    store = FragmentStore()
    parsed = parse_mail(HTML_MAIL, store)

    body = _body(store, parsed.body_link)
    assert '<a href="http://example.com/menu">noon</a>' in body
    assert "<script" not in body
    assert "steal" not in body
    assert store.pop(parsed.body_link.split("=", 1)[1]) == ""


def test_headers_and_recipients() -> None:
    parsed = parse_mail(HTML_MAIL, FragmentStore())
    assert parsed.subject == "Lunch"
    assert parsed.sender == "Alice <alice@example.com>"
    assert parsed.message_id == "<m1@example.com>"
    assert parsed.date is not None and parsed.date.year == 2013
    # De-duplicated by address, in To/From/Cc order.
    assert parsed.recipients == ["bob@example.com", "alice@example.com", "carol@example.com"]
    assert parsed.named_recipients[0] == "Bob <bob@example.com>"


def test_plain_body_is_escaped_into_pre() -> None:
    store = FragmentStore()
    parsed = parse_mail(PLAIN_MAIL, store)
    body = _body(store, parsed.body_link)
    assert body.startswith('<pre style="word-wrap: break-word; white-space: pre-wrap;">')
    assert "1 &lt; 2 &amp; 3 &gt; 2" in body


def test_multipart_prefers_html_part() -> None:
    body, found = parse_content(message_from_bytes(MULTIPART_MAIL))
    assert found == TEXT_HTML
    assert "<b>html version</b>" in body


def test_multipart_falls_back_to_plain_part() -> None:
    raw = MULTIPART_MAIL.replace(b"text/html", b"image/png")
    body, found = parse_content(message_from_bytes(raw))
    assert found == TEXT_PLAIN
    assert body.strip() == "plain version"


def test_non_text_content_has_no_body() -> None:
    raw = b"From: a@b.com\nContent-Type: application/pdf\n\n%PDF\n"
    assert parse_content(message_from_bytes(raw)) == (None, "")


def test_unknown_charset_falls_back_to_notice() -> None:
    store = FragmentStore()
    raw = PLAIN_MAIL.replace(b"us-ascii", b"x-no-such-charset")
    parsed = parse_mail(raw, store)
    assert _body(store, parsed.body_link) == PARSE_FAILURE_NOTICE


def test_empty_or_headerless_messages_fail() -> None:
    with pytest.raises(MailParseError):
        parse_mail(b"", FragmentStore())
    with pytest.raises(MailParseError):
        parse_mail(b"just some text without headers\n", FragmentStore())


def test_gmail_link_uses_hex_message_id() -> None:
    assert gmail_link("1466243285656103619") == "https://mail.google.com/mail/u/0/#inbox/" + format(
        1466243285656103619, "x"
    )
    assert gmail_link("255").endswith("/#inbox/ff")


@pytest.mark.parametrize("bad", ["", "-1", "12a", "18446744073709551616"])
def test_gmail_link_rejects_bad_ids(bad: str) -> None:
    with pytest.raises(ValueError):
        gmail_link(bad)


def test_fragment_keys_are_unique() -> None:
    store = FragmentStore()
    keys = {store.save("x") for _ in range(50)}
    assert len(keys) == 50
    assert len(store) == 50


def test_utf8_headers_are_decoded() -> None:
    raw = "From: Zoë <z@example.com>\nTo: bob@example.com\nSubject: café\n\nhi\n".encode("utf-8")
    parsed = parse_mail(raw, FragmentStore())
    assert parsed.subject == "café"
    assert parsed.sender == "Zoë <z@example.com>"
    assert parsed.recipients == ["bob@example.com", "z@example.com"]
    assert parsed.named_recipients[1] == "Zoë <z@example.com>"


def test_encoded_word_headers_are_decoded() -> None:
    raw = (
        b"From: =?utf-8?b?Wm/Dqw==?= <z@example.com>\n"
        b"To: bob@example.com\n"
        b"Subject: =?utf-8?q?caf=C3=A9?=\n\nhi\n"
    )
    parsed = parse_mail(raw, FragmentStore())
    assert parsed.subject == "café"
    assert parsed.named_recipients[1] == "Zoë <z@example.com>"


def test_unfetched_fragments_expire() -> None:
    now = [datetime(2024, 1, 1, 12, 0, 0)]
    store = FragmentStore(ttl_seconds=60, clock=lambda: now[0])
    old = store.save("old")
    now[0] += timedelta(seconds=61)
    fresh = store.save("fresh")

    assert len(store) == 1
    assert store.pop(old) == ""
    assert store.pop(fresh) == "fresh"


def test_fragment_store_is_capped() -> None:
    store = FragmentStore(max_entries=3)
    keys = [store.save(str(i)) for i in range(5)]
    assert len(store) == 3
    assert store.pop(keys[0]) == ""
    assert store.pop(keys[1]) == ""
    assert store.pop(keys[4]) == "4"
