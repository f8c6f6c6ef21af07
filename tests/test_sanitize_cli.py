from __future__ import annotations

import io
from unittest.mock import patch

import pytest

from quickmail.sanitize.cli import main
from quickmail.sanitize.cleaner import identity_url_policy, sanitize


class _CountingWriter(io.BytesIO):
    def __init__(self) -> None:
        super().__init__()
        self.writes = 0

    def write(self, data):  # type: ignore[override]
        self.writes += 1
        return super().write(data)


def test_cli_output_matches_sanitizer_with_identity_policy() -> None:
    text = '<div><a href="http://example.com/x">link</a><script>evil()</script></div>'
    out = _CountingWriter()
    main(stdin=io.BytesIO(text.encode("utf-8")), stdout=out)
    assert out.getvalue().decode("utf-8") == sanitize(text, identity_url_policy)
    assert b"evil" not in out.getvalue()
    assert out.writes == 1


def test_cli_empty_input_writes_empty_output() -> None:
    out = io.BytesIO()
    main(stdin=io.BytesIO(b""), stdout=out)
    assert out.getvalue() == b""


def test_cli_sanitizes_only_after_end_of_input() -> None:
    chunks = [b"<p>first ", b"half</p>", b"<p>second</p>"]

    class _ChunkedReader(io.RawIOBase):
        def readable(self) -> bool:
            return True

        def readinto(self, b) -> int:
            if not chunks:
                return 0
            data = chunks.pop(0)
            b[: len(data)] = data
            return len(data)

    out = io.BytesIO()
    main(stdin=io.BufferedReader(_ChunkedReader()), stdout=out)
    assert out.getvalue() == b"<p>first half</p><p>second</p>"


def test_cli_propagates_sanitizer_errors_without_output() -> None:
    out = io.BytesIO()
    with patch("quickmail.sanitize.cleaner.sanitize", side_effect=RuntimeError("boom")):
        with pytest.raises(RuntimeError):
            main(stdin=io.BytesIO(b"<p>x</p>"), stdout=out)
    assert out.getvalue() == b""


def test_cli_propagates_decode_errors() -> None:
    out = io.BytesIO()
    with pytest.raises(UnicodeDecodeError):
        main(stdin=io.BytesIO(b"\xff"), stdout=out)
    assert out.getvalue() == b""
