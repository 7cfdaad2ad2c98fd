"""
App assembly entry point.

Re-exports the FastAPI `app` from `mcadmin.api.main` for ``uvicorn app:app``.
"""

from mcadmin.api.main import app  # noqa: F401
