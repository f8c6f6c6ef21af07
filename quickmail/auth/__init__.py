"""
Mail authorization for the quickmail web front-end.

Design goals:
- Three-legged OAuth against the mail provider, silent first, interactive on demand.
- Redirector state machine kept free of HTTP so transitions are testable in isolation.
- Cookie-based session (HttpOnly) carrying only the verified email address.
"""
