"""Security helpers for response headers and password policy."""
from flask import request

PASSWORD_SYMBOLS = "!@#$%^&*()-_=+[]{}|;:,.<>?/"


def apply_security_headers(response, force_https: bool = False):
    """Apply headers suited to a JSON API that never serves active content."""
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    response.headers.setdefault("Cache-Control", "no-store")
    if force_https or request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
    return response


def password_meets_policy(password: str) -> tuple[bool, str | None]:
    """Enforce a sane password baseline for production."""
    if len(password) < 12:
        return False, "Password must be at least 12 characters long."
    if password.lower() == password or password.upper() == password:
        return False, "Use a mix of upper and lower case characters."
    if not any(c.isdigit() for c in password):
        return False, "Include at least one digit."
    if not any(c in PASSWORD_SYMBOLS for c in password):
        return False, "Include at least one symbol."
    return True, None
