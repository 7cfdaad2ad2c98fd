"""
API dependency helpers.

Resolves the caller's auth context from proxy headers and opens the
``ConfigModel`` named by the ``{name}`` path parameter.
"""
from typing import Any, Dict, Iterator, Optional

from fastapi import Depends, Header

from mcadmin.api.auth import build_auth_context, resolve_identity_from_headers
from mcadmin.db.config_model import ConfigModel


def get_auth_context(
    x_auth_request_user: Optional[str] = Header(default=None),
    x_auth_request_email: Optional[str] = Header(default=None),
    x_forwarded_user: Optional[str] = Header(default=None),
    x_forwarded_email: Optional[str] = Header(default=None),
) -> Optional[Dict[str, Any]]:
    user, email = resolve_identity_from_headers(
        x_auth_request_user=x_auth_request_user,
        x_auth_request_email=x_auth_request_email,
        x_forwarded_user=x_forwarded_user,
        x_forwarded_email=x_forwarded_email,
    )
    return build_auth_context(user, email)


def get_config_model(
    name: str,
    auth_context: Optional[Dict[str, Any]] = Depends(get_auth_context),
) -> Iterator[ConfigModel]:
    """Yield the model for the ``{name}`` path parameter and close it afterwards."""
    model = ConfigModel(name, auth_context=auth_context)
    try:
        yield model
    finally:
        model.close()


def skip_row_auth(model: ConfigModel) -> bool:
    """Admins bypass descriptor row-auth filters."""
    return bool((model.auth_context or {}).get("is_admin"))
