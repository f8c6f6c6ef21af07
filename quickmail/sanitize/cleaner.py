"""
HTML sanitization for untrusted mail bodies.

All parsing and allow-listing is delegated to bleach. This module adds two things:
raw-text elements (script, style and similar) are removed along with their bodies,
and every URI-valued attribute that survives bleach's allow-list is passed through
a caller-supplied URL policy which may keep, rewrite or deny it.
"""

from __future__ import annotations

import copy
import functools
from typing import BinaryIO, Callable, Dict, Optional

import bleach
from bleach import html5lib_shim
from bleach.html5lib_shim import Filter

UrlPolicy = Callable[[str], Optional[str]]

# Elements removed together with everything inside them.
DROPPED_ELEMENTS = frozenset({"script", "style", "title", "iframe", "noembed", "noframes", "xmp"})

URI_ATTRIBUTES = frozenset({"href", "src", "cite", "action", "background", "poster", "longdesc"})

ALLOWED_PROTOCOLS = frozenset(bleach.sanitizer.ALLOWED_PROTOCOLS) | {"ftp", "cid"}

# Formatting and layout tags commonly found in HTML mail.
ALLOWED_TAGS = frozenset(bleach.sanitizer.ALLOWED_TAGS) | {
    # fmt: off
    "address", "area", "b", "big", "blockquote", "br", "caption", "center", "cite",
    "code", "col", "colgroup", "dd", "del", "dfn", "div", "dl", "dt", "em", "font",
    "h1", "h2", "h3", "h4", "h5", "h6", "hr", "i", "img", "ins", "kbd", "li", "map",
    "ol", "p", "pre", "q", "s", "samp", "small", "span", "strike", "strong", "sub",
    "sup", "table", "tbody", "td", "tfoot", "th", "thead", "tr", "tt", "u", "ul", "var",
    # fmt: on
}

ALLOWED_ATTRIBUTES: Dict[str, list] = copy.deepcopy(bleach.sanitizer.ALLOWED_ATTRIBUTES)
ALLOWED_ATTRIBUTES["*"] = ["title", "dir", "lang", "align", "valign"]
ALLOWED_ATTRIBUTES["a"] = ["href", "title", "name", "target"]
ALLOWED_ATTRIBUTES["img"] = ["src", "alt", "width", "height", "border"]
ALLOWED_ATTRIBUTES["font"] = ["color", "face", "size"]
ALLOWED_ATTRIBUTES["blockquote"] = ["cite"]
ALLOWED_ATTRIBUTES["q"] = ["cite"]
ALLOWED_ATTRIBUTES["ol"] = ["start", "type"]
ALLOWED_ATTRIBUTES["area"] = ["href", "alt", "shape", "coords"]
for _cell in ("table", "td", "th", "tr"):
    ALLOWED_ATTRIBUTES[_cell] = ["width", "height", "bgcolor", "colspan", "rowspan", "cellpadding", "cellspacing"]


def identity_url_policy(url: str) -> str:
    return url


class UrlPolicyFilter(Filter):
    """html5lib filter that routes URI attributes through a URL policy."""

    def __init__(self, source, url_policy: UrlPolicy):
        super().__init__(source)
        self.url_policy = url_policy

    def __iter__(self):
        for token in super().__iter__():
            if token["type"] in ("StartTag", "EmptyTag") and token.get("data"):
                token["data"] = self._apply_policy(token["data"])
            yield token

    def _apply_policy(self, attrs):
        kept = {}
        for key, value in attrs.items():
            # Keys are (namespace, name) tuples after bleach's sanitizer pass.
            name = key[1] if isinstance(key, tuple) else key
            if name in URI_ATTRIBUTES:
                value = self.url_policy(value)
                if not value:
                    continue
            kept[key] = value
        return kept


class DropElementsFilter(Filter):
    """html5lib filter that removes whole elements, text content included."""

    def __init__(self, source, names=DROPPED_ELEMENTS):
        super().__init__(source)
        self.names = names

    def __iter__(self):
        depth = 0
        for token in super().__iter__():
            kind = token["type"]
            if kind in ("StartTag", "EndTag") and token["name"] in self.names:
                depth = depth + 1 if kind == "StartTag" else max(depth - 1, 0)
                continue
            if depth:
                continue
            yield token


class MailCleaner(bleach.sanitizer.Cleaner):
    """
    bleach Cleaner that drops DROPPED_ELEMENTS with their contents.

    bleach's own stripping turns a disallowed tag into text before the tree is built,
    which leaves script and style bodies behind as visible text. Here those elements
    are let into the tree and removed as whole subtrees before sanitizing.
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.parser = html5lib_shim.BleachHTMLParser(
            tags=frozenset(self.tags) | DROPPED_ELEMENTS,
            strip=self.strip,
            consume_entities=False,
            namespaceHTMLElements=False,
        )
        tree_walker = self.walker
        self.walker = lambda dom: DropElementsFilter(tree_walker(dom))


def _build_cleaner(url_policy: UrlPolicy) -> bleach.sanitizer.Cleaner:
    # Cleaner instances hold parser state and must not be shared across threads.
    return MailCleaner(
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
        strip_comments=True,
        filters=[functools.partial(UrlPolicyFilter, url_policy=url_policy)],
    )


def sanitize(html: str, url_policy: UrlPolicy = identity_url_policy) -> str:
    """
    Sanitize an HTML string.

    Args:
        html: Untrusted HTML text
        url_policy: Maps a candidate URL to itself (allow), a replacement (rewrite),
            or an empty string/None (deny, the attribute is dropped)

    Returns:
        The sanitized HTML string.
    """
    return _build_cleaner(url_policy).clean(html)


def sanitize_stream(stream: BinaryIO, url_policy: UrlPolicy = identity_url_policy) -> str:
    """
    Read a binary stream to EOF, decode it as UTF-8 and sanitize it as one unit.

    Decoding errors are not caught.
    """
    text = stream.read().decode("utf-8")
    return sanitize(text, url_policy)
