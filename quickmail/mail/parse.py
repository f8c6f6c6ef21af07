from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from email import message_from_bytes, policy
from email.errors import HeaderParseError
from email.headerregistry import Address
from email.message import Message
from email.utils import getaddresses
from typing import List, Optional, Tuple

from dateutil import parser as date_parser

from quickmail.mail.fragments import FragmentStore, get_fragment_store
from quickmail.sanitize import identity_url_policy, sanitize

logger = logging.getLogger(__name__)

TEXT_HTML = "text/html"
TEXT_PLAIN = "text/plain"

PARSE_FAILURE_NOTICE = "failed to parse content. view in gmail"
RECIPIENT_HEADERS = ("To", "From", "Cc")

_PRE_STYLE = "word-wrap: break-word; white-space: pre-wrap;"
_MSGID_RE = re.compile(r"^[0-9]+$")


class MailParseError(ValueError):
    pass


class ContentError(ValueError):
    pass


@dataclass
class ParsedMail:
    subject: str
    sender: str
    date: Optional[datetime]
    message_id: str
    body_link: str
    recipients: List[str] = field(default_factory=list)
    named_recipients: List[str] = field(default_factory=list)


def parse_content(part: Message) -> Tuple[Optional[str], str]:
    """
    Find the displayable body of a message part.

    Returns:
        (body, found_type) where found_type is text/html, text/plain or "" when the
        part holds nothing displayable. In multipart content the first text/html part
        wins; otherwise the last readable text part is kept.

    Raises:
        ContentError: a single text part declares a charset Python does not know.
    """
    media = part.get_content_type()
    if media in (TEXT_HTML, TEXT_PLAIN):
        payload = part.get_payload(decode=True) or b""
        charset = part.get_content_charset() or "utf-8"
        try:
            return payload.decode(charset, errors="replace"), media
        except LookupError as e:
            raise ContentError(f"unknown charset: {charset}") from e

    if part.is_multipart():
        body: Optional[str] = None
        found = ""
        for sub in part.get_payload():
            try:
                sub_body, sub_type = parse_content(sub)
            except ContentError:
                continue
            if sub_body is None:
                continue
            body, found = sub_body, sub_type
            if found == TEXT_HTML:
                break
        return body, found

    return None, ""


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return date_parser.parse(value)
    except (ValueError, OverflowError, TypeError):
        return None


def _header_text(value) -> str:
    """Decoded header text; raw 8-bit (UTF-8) bytes are recovered rather than mangled."""
    if value is None:
        return ""
    text = str(value)
    try:
        # Undecodable header bytes surface as surrogate escapes.
        return text.encode("utf-8", "surrogateescape").decode("utf-8", "replace")
    except UnicodeEncodeError:
        return text


def _named_address(name: str, address: str) -> str:
    try:
        return str(Address(display_name=name, addr_spec=address))
    except (ValueError, IndexError, HeaderParseError):
        return f"{name} <{address}>" if name else address


def parse_mail(raw: bytes, store: Optional[FragmentStore] = None) -> ParsedMail:
    """
    Parse an RFC 822 message and stash its rendered body as a one-time fragment.

    HTML bodies are sanitized; plain text bodies are escaped into a <pre> block.
    """
    if not raw or not raw.strip():
        raise MailParseError("failed to parse message: empty message")
    msg = message_from_bytes(raw, policy=policy.default)
    if not msg.keys():
        raise MailParseError("failed to parse message: no headers")

    try:
        body, found_type = parse_content(msg)
    except ContentError as e:
        logger.info("Falling back to notice body: %s", str(e))
        body, found_type = PARSE_FAILURE_NOTICE, ""

    if found_type == TEXT_HTML:
        body = sanitize(body or "", identity_url_policy)
    elif found_type == TEXT_PLAIN:
        body = f'<pre style="{_PRE_STYLE}">{html.escape(body or "")}</pre>'

    key = (store or get_fragment_store()).save(body or "")

    parsed = ParsedMail(
        subject=_header_text(msg.get("Subject")),
        sender=_header_text(msg.get("From")),
        date=_parse_date(_header_text(msg.get("Date"))),
        message_id=_header_text(msg.get("Message-ID")),
        body_link=f"fragment?key={key}",
    )
    seen = set()
    for header in RECIPIENT_HEADERS:
        values = [_header_text(v) for v in msg.get_all(header, [])]
        for name, address in getaddresses(values):
            if not address or address in seen:
                continue
            seen.add(address)
            parsed.recipients.append(address)
            parsed.named_recipients.append(_named_address(name, address))
    return parsed


def gmail_link(msgid: str) -> str:
    """Web-mail link for a decimal X-GM-MSGID (the URL uses its hex form)."""
    s = (msgid or "").strip()
    if not _MSGID_RE.match(s) or int(s) >= 2**64:
        raise ValueError(f"bad value for X-GM-MSGID: {msgid}")
    return f"https://mail.google.com/mail/u/0/#inbox/{int(s):x}"
