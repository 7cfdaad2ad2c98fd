"""
Configuration-driven model.

``ConfigModel`` reads a model descriptor and turns it into SQLAlchemy
statements: the aliased base table with its joins, grouping and ordering,
the model-wide filter, search-field filters built from submitted values,
row-level authorization, KV lists for dropdowns/trees, and paged record
reads and writes.
"""
from __future__ import annotations

import itertools
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import and_, column, delete, false, func, insert, literal_column, or_, select, table, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ClauseElement, ColumnElement

from mcadmin.db import database
from mcadmin.db.config import ModelConfig, get_file_config
from mcadmin.db.errors import (
    KvConfigNotFoundError,
    ReadOnlyModelError,
    RecordExistsError,
    RecordNotFoundError,
)
from mcadmin.db.sql import concat_fields, field_add_alias, fields_add_alias, positional_text
from mcadmin.utils.settings import get_settings

logger = logging.getLogger(__name__)

DEFAULT_KV_NAME = "default"
KEY_LABEL = "_key"
VALUE_LABEL = "_value"
LEVEL_KEY = "_level"

_NAMED_BIND = re.compile(r"(?<![:\w]):(\w+)")
_AS_ALIAS = re.compile(r"^(.*\S)\s+as\s+([\w`\"]+)$", re.IGNORECASE | re.DOTALL)


@dataclass
class KvsSearchOption:
    kv_name: str = DEFAULT_KV_NAME
    extra_where: Any = None
    return_path: bool = False
    not_row_auth: bool = False
    indent: str = ""
    extra_fields: List[str] = field(default_factory=list)


def is_empty_value(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def _value_text(value: Any) -> str:
    if isinstance(value, (list, tuple, set)):
        return ",".join(str(v) for v in value)
    return str(value)


class ConfigModel:
    """A model whose table, filters and KV lists come from a JSON descriptor."""

    def __init__(
        self,
        config_name: str,
        db: Optional[Session] = None,
        auth_context: Optional[Mapping[str, Any]] = None,
        config: Optional[ModelConfig] = None,
    ):
        self._config = config or get_file_config(config_name)
        self._owns_session = db is None
        self._db = db if db is not None else database.get_session(self._config.conn_name)
        self.auth_context = dict(auth_context) if auth_context is not None else None
        self._quote = self._db.get_bind().dialect.identifier_preparer.quote_identifier
        self._bind_seq = itertools.count()

        self._join_sql: List[str] = [j for j in self._config.joins if j and j.strip()]
        self._join_args: List[Any] = []
        self._wheres: List[ClauseElement] = []
        self._groups: List[str] = self.fields_add_alias(self._config.groups)
        self._havings: List[ClauseElement] = []
        self._orders: List[Any] = [text(o) for o in self.fields_add_alias(self._config.orders)]

    # -- accessors -------------------------------------------------------

    @property
    def config(self) -> ModelConfig:
        return self._config

    @property
    def db(self) -> Session:
        return self._db

    def close(self) -> None:
        if self._owns_session:
            self._db.close()

    def __enter__(self) -> "ConfigModel":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -- aliasing --------------------------------------------------------

    def field_add_alias(self, field_name: str) -> str:
        return field_add_alias(field_name, self._config.alias, self._quote)

    def fields_add_alias(self, fields: Iterable[str]) -> List[str]:
        return fields_add_alias(fields, self._config.alias, self._quote)

    def _column(self, field_name: str) -> ColumnElement:
        """Aliased select column labelled with its bare field name."""
        match = _AS_ALIAS.match(field_name.strip())
        if match:
            return literal_column(self.field_add_alias(match.group(1))).label(match.group(2).strip('`"'))
        expr = self.field_add_alias(field_name)
        if "(" in field_name:
            return literal_column(expr)
        return literal_column(expr).label(self._label_for(field_name))

    @staticmethod
    def _label_for(field_name: str) -> str:
        match = _AS_ALIAS.match(field_name.strip())
        if match:
            return match.group(2).strip('`"')
        return field_name.strip().split(".")[-1].strip('`"[] ')

    # -- chainable builders ----------------------------------------------

    def _next_prefix(self, kind: str) -> str:
        return f"{kind}{next(self._bind_seq)}"

    def _to_clause(self, query: Any, args: Sequence[Any], kind: str) -> Optional[ClauseElement]:
        if query is None:
            return None
        if isinstance(query, ClauseElement):
            return query
        if isinstance(query, Mapping):
            if not query:
                return None
            clauses = []
            for name, value in query.items():
                aliased = self.field_add_alias(str(name))
                if value is None:
                    clauses.append(text(f"{aliased} IS NULL"))
                elif isinstance(value, (list, tuple, set)):
                    clauses.append(positional_text(f"{aliased} IN ?", [list(value)], self._next_prefix(kind)))
                else:
                    clauses.append(positional_text(f"{aliased} = ?", [value], self._next_prefix(kind)))
            return and_(*clauses)
        if isinstance(query, str):
            if not query.strip():
                return None
            return positional_text(query, list(args), self._next_prefix(kind))
        if isinstance(query, (list, tuple)) and not query:
            return None
        if isinstance(query, (list, tuple)) and isinstance(query[0], str):
            return positional_text(query[0], list(query[1:]) + list(args), self._next_prefix(kind))
        raise TypeError(f"Unsupported condition type: {type(query).__name__}")

    def where(self, query: Any, *args: Any) -> "ConfigModel":
        clause = self._to_clause(query, args, "w")
        if clause is not None:
            self._wheres.append(clause)
        return self

    def joins(self, query: str, *args: Any) -> "ConfigModel":
        if query and query.strip():
            self._join_sql.append(query)
            self._join_args.extend(args)
        return self

    def group(self, query: str) -> "ConfigModel":
        if query and query.strip():
            self._groups.append(query)
        return self

    def having(self, query: Any, *values: Any) -> "ConfigModel":
        clause = self._to_clause(query, values, "h")
        if clause is not None:
            self._havings.append(clause)
        return self

    def order(self, value: Any) -> "ConfigModel":
        if isinstance(value, str):
            if value.strip():
                self._orders.append(text(value))
        elif value is not None:
            self._orders.append(value)
        return self

    # -- statement assembly ----------------------------------------------

    def _from_clause(self):
        cfg = self._config
        table_sql = f"{cfg.table} AS {self._quote(cfg.alias)}"
        if cfg.db_name:
            table_sql = f"{self._quote(cfg.db_name)}.{table_sql}"
        if self._join_sql:
            table_sql = f"{table_sql} {' '.join(self._join_sql)}"
        return positional_text(table_sql, self._join_args, "j")

    def _base_select(self) -> Select:
        stmt = select().select_from(self._from_clause())
        for clause in self._wheres:
            stmt = stmt.where(clause)
        if self._groups:
            stmt = stmt.group_by(*[text(g) for g in self._groups])
        for clause in self._havings:
            stmt = stmt.having(clause)
        if self._orders:
            stmt = stmt.order_by(*self._orders)
        return stmt

    def _row_auth_clause(self) -> Optional[ClauseElement]:
        sql = self._config.row_auth_where
        if not sql or not sql.strip():
            return None
        names = set(_NAMED_BIND.findall(sql))
        ctx = self.auth_context
        if ctx is None or any(ctx.get(n) is None for n in names):
            logger.debug("row_auth_denied: model=%s missing_context=%s", self._config.name, sorted(names))
            return false()
        clause = text(sql)
        if names:
            clause = clause.bindparams(**{n: ctx[n] for n in names})
        return clause

    def _search_clauses(self, search_values: Optional[Mapping[str, Any]]) -> List[ClauseElement]:
        values = dict(search_values or {})
        clauses = []
        for f in self._config.search_fields:
            if not f.where:
                continue
            value = values.get(f.name)
            if is_empty_value(value):
                value = f.default
            if is_empty_value(value):
                continue
            binds = []
            for tpl in f.values:
                if tpl == "?":
                    binds.append(value)
                else:
                    binds.append(tpl.replace("?", _value_text(value)))
            clauses.append(positional_text(f.where, binds, self._next_prefix("s")))
        return clauses

    def parse_where(
        self,
        extra_where: Any = None,
        search_values: Optional[Mapping[str, Any]] = None,
        not_search: bool = False,
        not_row_auth: bool = False,
    ) -> Select:
        """Return the base statement with per-call filters applied.

        The filters only affect the returned statement, never the model.
        """
        stmt = self._base_select()
        extra = self._to_clause(extra_where, (), "x") if extra_where is not None else None
        if extra is not None:
            stmt = stmt.where(extra)
        if self._config.where:
            stmt = stmt.where(text(self._config.where))
        if not not_search:
            for clause in self._search_clauses(search_values):
                stmt = stmt.where(clause)
        if not not_row_auth:
            auth = self._row_auth_clause()
            if auth is not None:
                stmt = stmt.where(auth)
        return stmt

    # -- KV lists --------------------------------------------------------

    def check_kvs_search_option(self, option: Optional[KvsSearchOption]) -> KvsSearchOption:
        option = replace(option) if option is not None else KvsSearchOption()
        if not option.kv_name:
            option.kv_name = DEFAULT_KV_NAME
        if option.kv_name not in self._config.kvs:
            raise KvConfigNotFoundError(option.kv_name, self._config.name)
        return option

    def parse_kv_fields(self, kv_name: str, extra_fields: Optional[Sequence[str]] = None) -> List[ColumnElement]:
        kv = self._config.kvs.get(kv_name)
        if kv is None:
            return []
        fields: List[ColumnElement] = [
            concat_fields(self.fields_add_alias(kv.key_fields), kv.key_sep).label(KEY_LABEL),
            concat_fields(self.fields_add_alias(kv.value_fields), kv.value_sep).label(VALUE_LABEL),
        ]
        if self._config.is_tree:
            fields.append(self._column(self._config.tree_path_field))
            if self._config.tree_level_field:
                fields.append(self._column(self._config.tree_level_field))
        for extra in extra_fields or []:
            if extra and extra.strip():
                fields.append(self._column(extra))
        return fields

    def get_kvs(self, option: Optional[KvsSearchOption] = None) -> Dict[str, Dict[str, Any]]:
        """Return ``{key: row}`` for the named KV config, in model order."""
        option = self.check_kvs_search_option(option)
        stmt = self.parse_where(option.extra_where, None, not_search=True, not_row_auth=option.not_row_auth)
        stmt = stmt.with_only_columns(*self.parse_kv_fields(option.kv_name, option.extra_fields))
        rows = self._db.execute(stmt).mappings().all()

        cfg = self._config
        path_key = self._label_for(cfg.tree_path_field) if cfg.is_tree else None
        result: Dict[str, Dict[str, Any]] = {}
        for mapping in rows:
            row = dict(mapping)
            key = "" if row.get(KEY_LABEL) is None else str(row[KEY_LABEL])
            if cfg.is_tree:
                path = row.get(path_key) or ""
                level = len(str(path)) // cfg.tree_path_bit
                row[LEVEL_KEY] = level
                if option.return_path:
                    key = str(path)
                if option.indent and level > 1:
                    row[VALUE_LABEL] = option.indent * (level - 1) + ("" if row[VALUE_LABEL] is None else str(row[VALUE_LABEL]))
            result[key] = row
        logger.debug("kvs_loaded: model=%s kv=%s count=%d", cfg.name, option.kv_name, len(result))
        return result

    # -- record reads ----------------------------------------------------

    def _select_columns(self, fields: Optional[Sequence[str]]) -> List[ColumnElement]:
        names = list(fields) if fields else self._config.list_field_names()
        if not names:
            return [literal_column(f"{self._quote(self._config.alias)}.*")]
        return [self._column(n) for n in names if n and n.strip()]

    def page_bounds(self, page: int, page_size: Optional[int]) -> Tuple[int, int]:
        settings = get_settings()
        page = max(int(page or 1), 1)
        size = int(settings.default_page_size if page_size is None else page_size)
        size = min(max(size, 1), settings.max_page_size)
        return page, size

    def find(
        self,
        search_values: Optional[Mapping[str, Any]] = None,
        page: int = 1,
        page_size: Optional[int] = None,
        fields: Optional[Sequence[str]] = None,
        extra_where: Any = None,
        not_total: bool = False,
        not_row_auth: bool = False,
        order: Any = None,
    ) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        """Return one page of rows and the total matching row count."""
        page, size = self.page_bounds(page, page_size)
        stmt = self.parse_where(extra_where, search_values, not_search=False, not_row_auth=not_row_auth)
        stmt = stmt.with_only_columns(*self._select_columns(fields))
        if order:
            stmt = stmt.order_by(None).order_by(text(order) if isinstance(order, str) else order)

        rows = [dict(r) for r in self._db.execute(stmt.limit(size).offset((page - 1) * size)).mappings().all()]
        total = None
        if not not_total:
            counted = select(func.count()).select_from(stmt.order_by(None).subquery())
            total = int(self._db.execute(counted).scalar_one())
        return rows, total

    def first(
        self,
        search_values: Optional[Mapping[str, Any]] = None,
        extra_where: Any = None,
        fields: Optional[Sequence[str]] = None,
        not_row_auth: bool = False,
        not_search: bool = False,
    ) -> Optional[Dict[str, Any]]:
        stmt = self.parse_where(extra_where, search_values, not_search=not_search, not_row_auth=not_row_auth)
        stmt = stmt.with_only_columns(*self._select_columns(fields)).limit(1)
        row = self._db.execute(stmt).mappings().first()
        return dict(row) if row is not None else None

    def get(
        self, pk_value: Any, fields: Optional[Sequence[str]] = None, not_row_auth: bool = False
    ) -> Optional[Dict[str, Any]]:
        """Return the record with primary key ``pk_value`` or ``None``."""
        pk = self._require_pk()
        if is_empty_value(pk_value):
            return None
        return self.first(extra_where={pk: pk_value}, fields=fields, not_row_auth=not_row_auth, not_search=True)

    # -- record writes ---------------------------------------------------

    def _require_pk(self) -> str:
        if self._config.read_only:
            raise ReadOnlyModelError(self._config.name)
        return self._config.pk

    def _write_table(self, names: Iterable[str]):
        cols = {self._config.pk, *names}
        return table(self._config.table, *[column(n) for n in sorted(cols)], schema=self._config.db_name or None)

    def _writable_fields(self) -> List[str]:
        names = [f.name for f in self._config.edit_fields]
        names.extend(self._config.unique_fields)
        if not self._config.auto_increment:
            names.append(self._config.pk)
        return list(dict.fromkeys(n for n in names if n))

    def _filter_data(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        writable = set(self._writable_fields())
        return {k: v for k, v in data.items() if k in writable}

    def is_exist(self, data: Mapping[str, Any], exclude_pk: Any = None) -> bool:
        """True when ``data`` collides with an existing record.

        A collision is a row sharing every unique field (a field missing from
        ``data`` compares as NULL), or, for models without an auto-increment
        key, a row with the same key.
        """
        pk = self._require_pk()
        cfg = self._config
        unique = list(cfg.unique_fields)
        checks = []
        if unique:
            checks.append(and_(*[column(f) == data.get(f) for f in unique]))
        if not cfg.auto_increment and data.get(pk) is not None:
            checks.append(column(pk) == data[pk])
        if not checks:
            return False
        tbl = self._write_table(list(unique))
        stmt = select(func.count()).select_from(tbl).where(or_(*checks))
        if exclude_pk is not None:
            stmt = stmt.where(column(pk) != exclude_pk)
        return int(self._db.execute(stmt).scalar_one()) > 0

    def _run_write(self, action: str, stmt, fetch: Callable[[Any], Any]) -> Any:
        """Execute ``stmt``, read what the caller needs from the result, then commit."""
        try:
            value = fetch(self._db.execute(stmt))
            self._db.commit()
            return value
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.error("record_%s_failed: model=%s error=%s", action, self._config.name, exc)
            raise

    def create(self, data: Mapping[str, Any]) -> Any:
        """Insert a record and return its primary key value."""
        pk = self._require_pk()
        cfg = self._config
        values = self._filter_data(data)
        for f in cfg.edit_fields:
            if f.name not in values and f.default is not None:
                values[f.name] = f.default
        if cfg.auto_increment:
            values.pop(pk, None)
        if self.is_exist(values):
            raise RecordExistsError(cfg.name)

        tbl = self._write_table(values)
        stmt = insert(tbl).values(**values)
        returning = cfg.auto_increment and getattr(self._db.get_bind().dialect, "insert_returning", False)
        if returning:
            new_pk = self._run_write("create", stmt.returning(tbl.c[pk]), lambda r: r.scalar_one())
        elif cfg.auto_increment:
            new_pk = self._run_write("create", stmt, lambda r: r.lastrowid)
        else:
            self._run_write("create", stmt, lambda r: r.rowcount)
            new_pk = values.get(pk)
        logger.info("record_created: model=%s pk=%s", cfg.name, new_pk)
        return new_pk

    def _collides_on_update(self, values: Mapping[str, Any], pk_value: Any) -> bool:
        """Uniqueness check for an update; unique fields left out keep their stored values."""
        cfg = self._config
        changes_key = not cfg.auto_increment and cfg.pk in values
        if not changes_key and not any(f in values for f in cfg.unique_fields):
            return False
        candidate = dict(values)
        missing = [f for f in cfg.unique_fields if f not in values]
        if missing:
            current = self.get(pk_value, fields=missing, not_row_auth=True)
            if current is None:
                raise RecordNotFoundError(cfg.name, pk_value)
            candidate.update({f: current.get(f) for f in missing})
        return self.is_exist(candidate, exclude_pk=pk_value)

    def update(self, data: Mapping[str, Any], pk_value: Any) -> int:
        """Update the record ``pk_value`` and return the affected row count."""
        pk = self._require_pk()
        cfg = self._config
        values = self._filter_data(data)
        if cfg.auto_increment:
            values.pop(pk, None)
        if self._collides_on_update(values, pk_value):
            raise RecordExistsError(cfg.name)
        if not values:
            if self.get(pk_value) is None:
                raise RecordNotFoundError(cfg.name, pk_value)
            return 0
        tbl = self._write_table(values)
        stmt = update(tbl).where(tbl.c[pk] == pk_value).values(**values)
        affected = self._run_write("update", stmt, lambda r: r.rowcount)
        if affected == 0:
            raise RecordNotFoundError(cfg.name, pk_value)
        logger.info("record_updated: model=%s pk=%s fields=%s", cfg.name, pk_value, sorted(values))
        return affected

    def save(self, data: Mapping[str, Any]) -> Any:
        """Create or update depending on the primary key in ``data``.

        Models with an auto-increment key update when the key is present.
        Other models carry the original key as ``__<pk>``; its presence means
        update (the key itself may change).
        """
        pk = self._require_pk()
        key = pk if self._config.auto_increment else f"__{pk}"
        pk_value = data.get(key)
        if is_empty_value(pk_value):
            return self.create(data)
        self.update(data, pk_value)
        if self._config.auto_increment:
            return pk_value
        return data.get(pk, pk_value)

    def visible_pks(self, ids: Iterable[Any], not_row_auth: bool = False) -> List[Any]:
        """Keys from ``ids`` whose rows pass the model filter and row auth."""
        pk = self._require_pk()
        ids = [i for i in ids if not is_empty_value(i)]
        if not ids:
            return []
        stmt = self.parse_where({pk: ids}, not_search=True, not_row_auth=not_row_auth)
        stmt = stmt.with_only_columns(self._column(pk))
        return [row[0] for row in self._db.execute(stmt).all()]

    def delete(self, ids: Any) -> int:
        """Delete records by primary key; ``ids`` may be a scalar or a list."""
        pk = self._require_pk()
        if not isinstance(ids, (list, tuple, set)):
            ids = [ids]
        ids = [i for i in ids if not is_empty_value(i)]
        if not ids:
            return 0
        tbl = self._write_table([])
        affected = self._run_write("delete", delete(tbl).where(tbl.c[pk].in_(ids)), lambda r: r.rowcount)
        logger.info("records_deleted: model=%s count=%d", self._config.name, affected)
        return affected
