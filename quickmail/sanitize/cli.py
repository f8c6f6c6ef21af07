"""
Stream sanitizer: stdin -> bleach -> stdout.

Takes no flags. The whole of standard input is read before anything is sanitized,
and the result is written to standard output exactly once. Errors propagate, so the
process exits non-zero with a traceback on stderr and nothing on stdout.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import BinaryIO, Optional

from quickmail.sanitize.cleaner import identity_url_policy, sanitize_stream

logger = logging.getLogger(__name__)


def main(stdin: Optional[BinaryIO] = None, stdout: Optional[BinaryIO] = None) -> None:
    """CLI entry point."""
    log_level = os.getenv("LOG_LEVEL", "warning").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    src = stdin if stdin is not None else sys.stdin.buffer
    dst = stdout if stdout is not None else sys.stdout.buffer

    clean = sanitize_stream(src, identity_url_policy)
    logger.debug("Sanitized input (%d chars out)", len(clean))

    dst.write(clean.encode("utf-8"))
    dst.flush()


if __name__ == "__main__":
    main()
