"""
Model descriptors ("model attributes") loaded from JSON files.

A descriptor names the table a model reads, how fields are aliased, which
filters and joins always apply, the search/edit widgets shown on admin
screens and the named KV configs used for dropdowns and trees.
"""
from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from mcadmin.db.errors import ModelConfigInvalidError, ModelConfigNotFoundError
from mcadmin.utils.settings import get_settings
from mcadmin.utils.strings import load_json_file, split_fields

logger = logging.getLogger(__name__)

CONNECTIONS_FILE_NAME = "connections.json"

WIDGET_TYPES = frozenset(
    {"text", "number", "hidden", "textarea", "select", "radio", "checkbox", "date", "datetime"}
)


class _ConfigBase(BaseModel):
    model_config = ConfigDict(extra="ignore")


class OptionsConfig(_ConfigBase):
    """Where an option widget gets its choices from."""

    items: Dict[str, str] = Field(default_factory=dict)
    model: str = ""
    kv: str = "default"
    return_path: bool = False
    indent: Optional[str] = None


class KvConfig(_ConfigBase):
    key_fields: List[str]
    key_sep: str = ""
    value_fields: List[str]
    value_sep: str = " "

    @field_validator("key_fields", "value_fields", mode="before")
    @classmethod
    def _split(cls, v):
        return split_fields(v)

    @field_validator("key_fields", "value_fields")
    @classmethod
    def _non_empty(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("at least one field is required")
        return v


class FieldConfig(_ConfigBase):
    name: str
    title: str = ""
    width: Optional[int] = None
    sortable: bool = False
    hidden: bool = False


class _WidgetFieldConfig(_ConfigBase):
    name: str
    title: str = ""
    widget: str = "text"
    default: Any = None
    options: Optional[OptionsConfig] = None
    attrs: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("widget")
    @classmethod
    def _known_widget(cls, v: str) -> str:
        v = (v or "text").strip().lower()
        if v not in WIDGET_TYPES:
            raise ValueError(f"unknown widget type '{v}'")
        return v


class SearchFieldConfig(_WidgetFieldConfig):
    where: str = ""
    values: List[str] = Field(default_factory=lambda: ["?"])


class EditFieldConfig(_WidgetFieldConfig):
    required: bool = False
    readonly: bool = False
    placeholder: str = ""


class ModelConfig(_ConfigBase):
    name: str = ""
    title: str = ""
    conn_name: str = "default"
    db_name: str = ""
    table: str
    alias: str = ""
    pk: str = "id"
    auto_increment: bool = True
    unique_fields: List[str] = Field(default_factory=list)
    joins: List[str] = Field(default_factory=list)
    groups: List[str] = Field(default_factory=list)
    orders: List[str] = Field(default_factory=list)
    where: str = ""
    row_auth_where: str = ""
    is_tree: bool = False
    tree_path_field: str = ""
    tree_level_field: str = ""
    tree_path_bit: int = 0
    fields: List[FieldConfig] = Field(default_factory=list)
    search_fields: List[SearchFieldConfig] = Field(default_factory=list)
    edit_fields: List[EditFieldConfig] = Field(default_factory=list)
    kvs: Dict[str, KvConfig] = Field(default_factory=dict)

    @field_validator("unique_fields", "groups", "orders", mode="before")
    @classmethod
    def _split(cls, v):
        return split_fields(v)

    @model_validator(mode="after")
    def _defaults_and_tree(self) -> "ModelConfig":
        if not self.table.strip():
            raise ValueError("table is required")
        if not self.alias:
            self.alias = self.table
        if not self.title:
            self.title = self.name
        if self.is_tree:
            if not self.tree_path_field:
                raise ValueError("tree models require tree_path_field")
            if self.tree_path_bit <= 0:
                raise ValueError("tree models require a positive tree_path_bit")
        return self

    @property
    def read_only(self) -> bool:
        return not self.pk

    def list_field_names(self) -> List[str]:
        return [f.name for f in self.fields]


def _validate_name(name: str) -> bool:
    if not name or name in (".", ".."):
        return False
    return "/" not in name and "\\" not in name and ".." not in name


def parse_model_config(name: str, data: Any) -> ModelConfig:
    """Validate raw descriptor data for model ``name``."""
    if not isinstance(data, dict):
        raise ModelConfigInvalidError(name, "descriptor must be a JSON object")
    payload = dict(data)
    payload.setdefault("name", name)
    try:
        return ModelConfig.model_validate(payload)
    except ValidationError as exc:
        raise ModelConfigInvalidError(name, f"{exc.error_count()} validation error(s)", exc.errors()) from exc


@lru_cache(maxsize=None)
def _load_config(config_dir: str, name: str) -> ModelConfig:
    path = Path(config_dir) / f"{name}.json"
    if not path.is_file():
        raise ModelConfigNotFoundError(name)
    try:
        data = load_json_file(path)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning("model_config_parse_failed: name=%s path=%s error=%s", name, path, exc)
        raise ModelConfigInvalidError(name, str(exc)) from exc
    config = parse_model_config(name, data)
    logger.debug("model_config_loaded: name=%s table=%s alias=%s", name, config.table, config.alias)
    return config


def get_file_config(name: str, config_dir: Optional[Path] = None) -> ModelConfig:
    """Load the descriptor named ``name`` from the configured directory."""
    if not _validate_name(name):
        raise ModelConfigNotFoundError(name)
    directory = config_dir or get_settings().model_config_dir
    return _load_config(str(directory), name)


def list_config_names(config_dir: Optional[Path] = None) -> List[str]:
    """Return the descriptor names available in the directory, sorted."""
    directory = Path(config_dir or get_settings().model_config_dir)
    if not directory.is_dir():
        return []
    return sorted(
        p.stem for p in directory.glob("*.json") if p.is_file() and p.name != CONNECTIONS_FILE_NAME
    )


def clear_config_cache() -> None:
    """Forget loaded descriptors so edits on disk are picked up."""
    _load_config.cache_clear()
