#!/usr/bin/env python3
"""
quickmail - mail sign-in front-end.

Serves the sign-in page that authorizes against the mail provider and the
sanitized message fragments. The HTML filter lives in `quickmail-sanitize`.
"""

import argparse
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Serve the quickmail web front-end",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve on the default port
  python main.py

  # Serve on localhost only
  python main.py --host 127.0.0.1 --port 9000

  # Sanitize a message body from the shell
  quickmail-sanitize < body.html > clean.html
        """,
    )
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Server listen port (default: 8080)")

    args = parser.parse_args()

    try:
        from quickmail.api.server import run

        run(host=args.host, port=args.port)
    except Exception as e:
        print(f"Error starting server: {e}", file=sys.stderr)
        raise


if __name__ == "__main__":
    main()
