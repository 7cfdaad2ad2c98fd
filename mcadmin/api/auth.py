"""
Identity resolution for row-level authorization.

Parses proxy headers and normalizes emails into the auth context that model
descriptors bind in their ``row_auth_where`` filters.
"""
import os
from typing import Any, Dict, Optional, Tuple


def _normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    return email.strip().lower()


def _normalize_list_env(var_name: str) -> set:
    raw = os.getenv(var_name, "")
    values = set()
    for entry in raw.split(","):
        cleaned = entry.strip().strip('"').strip("'")
        if cleaned:
            values.add(cleaned.lower())
    return values


def _admin_emails() -> set:
    return _normalize_list_env("ADMIN_EMAILS")


def is_admin(email: Optional[str]) -> bool:
    if not email:
        return False
    return _normalize_email(email) in _admin_emails()


def resolve_identity_from_headers(
    x_auth_request_user: Optional[str],
    x_auth_request_email: Optional[str],
    x_forwarded_user: Optional[str],
    x_forwarded_email: Optional[str],
) -> Tuple[Optional[str], Optional[str]]:
    user = x_auth_request_user or x_forwarded_user
    email = _normalize_email(x_auth_request_email or x_forwarded_email)
    return user, email


def build_auth_context(user: Optional[str], email: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the bind values available to row-auth filters, or ``None`` for guests."""
    if not user and not email:
        return None
    return {
        "user": user or email,
        "email": email,
        "is_admin": is_admin(email),
    }
