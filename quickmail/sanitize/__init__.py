from quickmail.sanitize.cleaner import identity_url_policy, sanitize, sanitize_stream

__all__ = ["identity_url_policy", "sanitize", "sanitize_stream"]
