"""
Database engines and sessions, keyed by connection name.

Model descriptors refer to a connection by name. ``default`` resolves to
``DATABASE_URL``; other names come from the connections file and from
``DATABASE_URL_<NAME>`` environment variables. Under pytest, with no explicit
URL, the default connection falls back to an in-memory SQLite database.
"""
import json
import logging
import os
import sys
import threading
from typing import Dict, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from mcadmin.db.errors import ConnectionNotFoundError
from mcadmin.utils.settings import get_settings
from mcadmin.utils.strings import load_json_file

logger = logging.getLogger(__name__)

DEFAULT_CONNECTION = "default"

_engines: Dict[str, Engine] = {}
_session_factories: Dict[str, sessionmaker] = {}
_lock = threading.Lock()


def _is_pytest_runtime() -> bool:
    """Best-effort detection that we're executing under pytest."""
    if os.getenv("PYTEST_RUNNING") == "1":
        return True
    if "PYTEST_CURRENT_TEST" in os.environ:
        return True
    return "pytest" in sys.modules


def _connections_from_file() -> Dict[str, str]:
    path = get_settings().connections_file
    if not path.is_file():
        return {}
    try:
        data = load_json_file(path)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.error("connections_file_invalid: path=%s error=%s", path, exc)
        raise
    if not isinstance(data, dict):
        raise ValueError(f"Connections file {path} must contain a JSON object")
    return {str(k): str(v) for k, v in data.items() if v}


def resolve_database_url(conn_name: str = DEFAULT_CONNECTION) -> str:
    """Return the URL configured for ``conn_name``.

    Precedence: ``DATABASE_URL_<NAME>`` env var, then ``DATABASE_URL`` for the
    default connection, then the connections file.
    """
    env_url = os.getenv(f"DATABASE_URL_{conn_name.upper()}")
    if env_url:
        return env_url
    if conn_name == DEFAULT_CONNECTION and get_settings().database_url:
        return get_settings().database_url
    file_urls = _connections_from_file()
    if conn_name in file_urls:
        return file_urls[conn_name]
    if conn_name == DEFAULT_CONNECTION and _is_pytest_runtime():
        return "sqlite+pysqlite:///:memory:"
    raise ConnectionNotFoundError(conn_name)


def _engine_kwargs(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    kwargs: dict = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in url or url.rstrip("/").endswith("sqlite:"):
        kwargs["poolclass"] = StaticPool
    return kwargs


def get_engine(conn_name: str = DEFAULT_CONNECTION) -> Engine:
    """Return the cached engine for ``conn_name``, creating it on first use."""
    with _lock:
        engine = _engines.get(conn_name)
        if engine is None:
            url = resolve_database_url(conn_name)
            engine = create_engine(url, **_engine_kwargs(url))
            _engines[conn_name] = engine
            _session_factories[conn_name] = sessionmaker(autocommit=False, autoflush=False, bind=engine)
            logger.info("db_engine_created: conn=%s dialect=%s", conn_name, engine.dialect.name)
        return engine


def get_session(conn_name: str = DEFAULT_CONNECTION) -> Session:
    """Open a new session on ``conn_name``; the caller closes it."""
    get_engine(conn_name)
    return _session_factories[conn_name]()


def get_db() -> Iterator[Session]:
    """Dependency to get a database session."""
    db = get_session(DEFAULT_CONNECTION)
    try:
        yield db
    finally:
        db.close()


def dispose_engines() -> None:
    """Dispose and forget every cached engine."""
    with _lock:
        for name, engine in _engines.items():
            engine.dispose()
            logger.debug("db_engine_disposed: conn=%s", name)
        _engines.clear()
        _session_factories.clear()
