import json
from pathlib import Path

import pytest
from sqlalchemy import create_engine, text

from mcadmin.db import database
from mcadmin.db.config import clear_config_cache
from mcadmin.utils.settings import refresh_settings_cache


USERS = {
    "title": "Users",
    "table": "users",
    "alias": "u",
    "pk": "id",
    "unique_fields": "email",
    "orders": ["id"],
    "fields": [
        {"name": "id", "title": "ID"},
        {"name": "name", "title": "Name", "sortable": True},
        {"name": "email", "title": "Email"},
        {"name": "status", "title": "Status"},
        {"name": "region_id", "title": "Region"},
    ],
    "search_fields": [
        {"name": "name", "title": "Name", "where": "u.name LIKE ?", "values": ["%?%"]},
        {
            "name": "status",
            "title": "Status",
            "widget": "select",
            "where": "u.status = ?",
            "options": {"items": {"1": "Active", "0": "Disabled"}},
        },
        {
            "name": "region_id",
            "title": "Region",
            "widget": "select",
            "where": "u.region_id = ?",
            "options": {"model": "regions"},
        },
    ],
    "edit_fields": [
        {"name": "name", "title": "Name", "required": True},
        {"name": "email", "title": "Email", "required": True},
        {
            "name": "status",
            "title": "Status",
            "widget": "radio",
            "default": "1",
            "options": {"items": {"1": "Active", "0": "Disabled"}},
        },
        {"name": "region_id", "title": "Region", "widget": "select", "options": {"model": "regions"}},
    ],
    "kvs": {
        "default": {"key_fields": "id", "value_fields": "name"},
        "contact": {"key_fields": ["id"], "value_fields": ["name", "email"], "value_sep": " - "},
    },
}

REGIONS = {
    "title": "Regions",
    "table": "regions",
    "alias": "r",
    "pk": "id",
    "orders": ["path"],
    "is_tree": True,
    "tree_path_field": "path",
    "tree_path_bit": 2,
    "tree_level_field": "depth",
    "fields": [{"name": "id"}, {"name": "name"}, {"name": "path"}],
    "edit_fields": [{"name": "name"}, {"name": "path"}],
    "kvs": {"default": {"key_fields": "id", "value_fields": "name"}},
}

TAGS = {
    "title": "Tags",
    "table": "tags",
    "alias": "t",
    "pk": "code",
    "auto_increment": False,
    "orders": ["code"],
    "fields": [{"name": "code"}, {"name": "name"}],
    "edit_fields": [{"name": "code", "required": True}, {"name": "name"}],
    "kvs": {"default": {"key_fields": "code", "value_fields": "name"}},
}

NOTES = {
    "title": "Notes",
    "table": "notes",
    "alias": "n",
    "pk": "id",
    "orders": ["id"],
    "row_auth_where": "n.owner = :user",
    "fields": [{"name": "id"}, {"name": "title"}, {"name": "owner"}],
    "edit_fields": [{"name": "title"}, {"name": "owner"}],
    "kvs": {"default": {"key_fields": "id", "value_fields": "title"}},
}

ACTIVE_USERS = {
    "title": "Active users",
    "table": "users",
    "alias": "au",
    "pk": "",
    "where": "au.status = 1",
    "orders": ["id"],
    "fields": [{"name": "id"}, {"name": "name"}],
    "kvs": {"default": {"key_fields": "id", "value_fields": "name"}},
}

DESCRIPTORS = {
    "users": USERS,
    "regions": REGIONS,
    "tags": TAGS,
    "notes": NOTES,
    "active_users": ACTIVE_USERS,
}

SCHEMA = [
    """CREATE TABLE regions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name VARCHAR(64) NOT NULL,
        path VARCHAR(32) NOT NULL,
        depth INTEGER
    )""",
    """CREATE TABLE users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name VARCHAR(64) NOT NULL,
        email VARCHAR(128),
        status INTEGER NOT NULL DEFAULT 1,
        region_id INTEGER
    )""",
    """CREATE TABLE tags (
        code VARCHAR(32) PRIMARY KEY,
        name VARCHAR(64)
    )""",
    """CREATE TABLE notes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title VARCHAR(128),
        owner VARCHAR(64)
    )""",
]

SEED = [
    "INSERT INTO regions (id, name, path, depth) VALUES (1, 'China', '01', 1), (2, 'Zhejiang', '0101', 2), "
    "(3, 'Hangzhou', '010101', 3), (4, 'Japan', '02', 1)",
    "INSERT INTO users (id, name, email, status, region_id) VALUES "
    "(1, 'Alice', 'alice@example.com', 1, 3), (2, 'Bob', 'bob@example.com', 0, 4), "
    "(3, 'Carol', 'carol@example.com', 1, 3)",
    "INSERT INTO tags (code, name) VALUES ('py', 'Python'), ('sql', 'SQL')",
    "INSERT INTO notes (id, title, owner) VALUES (1, 'alice note', 'alice'), (2, 'bob note', 'bob'), "
    "(3, 'second alice note', 'alice')",
]


def write_descriptors(directory: Path, descriptors: dict) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    for name, data in descriptors.items():
        (directory / f"{name}.json").write_text(json.dumps(data), encoding="utf-8")


def _reset_caches() -> None:
    database.dispose_engines()
    clear_config_cache()
    refresh_settings_cache()


@pytest.fixture
def config_dir(tmp_path):
    directory = tmp_path / "models"
    write_descriptors(directory, DESCRIPTORS)
    return directory


@pytest.fixture
def db_url(tmp_path):
    url = f"sqlite+pysqlite:///{tmp_path / 'admin.db'}"
    engine = create_engine(url)
    with engine.begin() as conn:
        for stmt in SCHEMA + SEED:
            conn.execute(text(stmt))
    engine.dispose()
    return url


@pytest.fixture(autouse=True)
def app_env(monkeypatch, config_dir, db_url):
    """Point settings at the temporary descriptors and database."""
    monkeypatch.setenv("MODEL_CONFIG_DIR", str(config_dir))
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.delenv("DB_CONNECTIONS_FILE", raising=False)
    monkeypatch.delenv("WIDGET_TEMPLATE_DIR", raising=False)
    monkeypatch.delenv("DEFAULT_PAGE_SIZE", raising=False)
    monkeypatch.delenv("MAX_PAGE_SIZE", raising=False)
    monkeypatch.delenv("ADMIN_EMAILS", raising=False)
    _reset_caches()
    yield
    _reset_caches()


@pytest.fixture
def db_session():
    session = database.get_session()
    try:
        yield session
    finally:
        session.close()
