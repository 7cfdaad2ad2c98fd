"""
Widget Service

Renders the HTML widgets of admin search and edit screens from a model
descriptor. Markup follows the admin front-end conventions: forms are
``search_form`` / ``edit_form``, date inputs carry a ``datetime-data``
attribute for the client date picker, and action links use ``admin-href``
with ``open-type`` / ``param-type`` attributes.
"""
from __future__ import annotations

import logging
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape
from markupsafe import Markup, escape

from mcadmin.db.config import EditFieldConfig, OptionsConfig, SearchFieldConfig, get_file_config
from mcadmin.db.config_model import LEVEL_KEY, VALUE_LABEL, ConfigModel, KvsSearchOption, is_empty_value
from mcadmin.utils.settings import get_settings
from mcadmin.utils.strings import to_camel_case

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "widgets"
DEFAULT_TREE_INDENT = "&nbsp;&nbsp;"
SEARCH_FORM_ID = "search_form"
EDIT_FORM_ID = "edit_form"

Option = Tuple[str, Markup]


class OpenType(IntEnum):
    """How the admin shell opens an action link."""
    TAB = 0
    WINDOW = 1
    SELF = 2
    DIALOG = 3
    EDIT_DIALOG = 4
    POST = 5


class ParamType(IntEnum):
    """Where an action link takes its request parameters from."""
    NONE = 0
    SEARCH_FORM = 1
    SINGLE_ROW = 2
    MULTI_ROW = 3


def _selected_values(value: Any) -> List[str]:
    if is_empty_value(value):
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value]
    if isinstance(value, str) and "," in value:
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(value)]


def _text_value(value: Any, selected: List[str]) -> Any:
    if is_empty_value(value):
        return ""
    if isinstance(value, (list, tuple, set)):
        return ",".join(selected)
    return value


def _date_picker_data(widget: str) -> str:
    return "{type: 'datetime'}" if widget == "datetime" else "{type: 'date'}"


class WidgetService:
    """Render descriptor widgets through Jinja2 templates."""

    def __init__(self, template_dir: Optional[Path] = None):
        template_path = Path(template_dir or get_settings().widget_template_dir or DEFAULT_TEMPLATE_DIR)
        if not template_path.exists():
            logger.warning("Widget template directory not found: %s; using packaged templates", template_path)
            template_path = DEFAULT_TEMPLATE_DIR
        self.template_env = Environment(
            loader=FileSystemLoader(str(template_path)),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    # -- options ---------------------------------------------------------

    def resolve_options(
        self, options: Optional[OptionsConfig], source: ConfigModel, not_row_auth: bool = False
    ) -> List[Option]:
        """Return ``(key, label)`` pairs for an option widget.

        KV-backed options share the source model's session when both models
        use the same connection, and apply the option model's row auth unless
        ``not_row_auth`` is set.
        """
        if options is None:
            return []
        if options.items:
            return [(str(k), escape(v)) for k, v in options.items.items()]
        if not options.model:
            return []

        opts_model = self._options_model(options.model, source)
        try:
            option = KvsSearchOption(kv_name=options.kv, return_path=options.return_path, not_row_auth=not_row_auth)
            kvs = opts_model.get_kvs(option)
            is_tree = opts_model.config.is_tree
        finally:
            if opts_model is not source:
                opts_model.close()

        indent = Markup(options.indent if options.indent is not None else DEFAULT_TREE_INDENT)
        result: List[Option] = []
        for key, row in kvs.items():
            label = escape("" if row.get(VALUE_LABEL) is None else row[VALUE_LABEL])
            level = row.get(LEVEL_KEY) or 0
            if is_tree and level > 1:
                label = indent * (level - 1) + label
            result.append((key, label))
        return result

    @staticmethod
    def _options_model(name: str, source: ConfigModel) -> ConfigModel:
        if name == source.config.name:
            return source
        config = get_file_config(name)
        if config.conn_name == source.config.conn_name:
            return ConfigModel(name, db=source.db, auth_context=source.auth_context, config=config)
        return ConfigModel(name, auth_context=source.auth_context, config=config)

    # -- widgets ---------------------------------------------------------

    def render_widget(
        self,
        field: SearchFieldConfig | EditFieldConfig,
        value: Any = None,
        options: Optional[Iterable[Option]] = None,
        form: str = "edit",
    ) -> Markup:
        """Render a single widget for ``field`` with ``value`` selected."""
        if is_empty_value(value):
            value = field.default
        selected = _selected_values(value)
        template = self.template_env.get_template("widget.html")
        html = template.render(
            field=field,
            widget=field.widget,
            dom_id=to_camel_case(f"{form}_{field.name}"),
            form=form,
            value=_text_value(value, selected),
            selected=selected,
            options=list(options or []),
            attrs=field.attrs,
            required=getattr(field, "required", False),
            readonly=getattr(field, "readonly", False),
            placeholder=getattr(field, "placeholder", "") or field.title,
            date_data=_date_picker_data(field.widget),
        )
        return Markup(html)

    def _render_items(
        self,
        model: ConfigModel,
        fields: Iterable[SearchFieldConfig | EditFieldConfig],
        values: Mapping[str, Any],
        form: str,
        not_row_auth: bool = False,
    ) -> List[Dict[str, Any]]:
        items = []
        for field in fields:
            options = self.resolve_options(field.options, model, not_row_auth) if field.widget in ("select", "radio", "checkbox") else []
            items.append({
                "name": field.name,
                "title": field.title or field.name,
                "hidden": field.widget == "hidden",
                "html": self.render_widget(field, values.get(field.name), options, form=form),
            })
        return items

    def render_search_form(
        self, model: ConfigModel, values: Optional[Mapping[str, Any]] = None, not_row_auth: bool = False
    ) -> Markup:
        """Render the search form of ``model``."""
        items = self._render_items(model, model.config.search_fields, values or {}, "search", not_row_auth)
        template = self.template_env.get_template("search_form.html")
        return Markup(template.render(form_id=SEARCH_FORM_ID, model=model.config, items=items))

    def render_edit_form(
        self, model: ConfigModel, record: Optional[Mapping[str, Any]] = None, not_row_auth: bool = False
    ) -> Markup:
        """Render the edit form of ``model``; ``record`` fills values on edit."""
        cfg = model.config
        record = dict(record or {})
        original_pk = None
        if record and cfg.pk and not cfg.auto_increment:
            original_pk = record.get(cfg.pk)
        items = self._render_items(model, cfg.edit_fields, record, "edit", not_row_auth)
        template = self.template_env.get_template("edit_form.html")
        return Markup(template.render(
            form_id=EDIT_FORM_ID,
            model=cfg,
            items=items,
            pk=cfg.pk,
            pk_value=record.get(cfg.pk) if cfg.auto_increment else None,
            original_pk_name=f"__{cfg.pk}",
            original_pk=original_pk,
        ))

    def render_action_link(
        self,
        title: str,
        href: str,
        open_type: OpenType = OpenType.TAB,
        param_type: ParamType = ParamType.NONE,
        width: Optional[int] = None,
        height: Optional[int] = None,
        confirm: str = "",
        no_close: bool = False,
        edit_form_id: str = "",
        param_obj_id: str = "",
        css_class: str = "layui-btn layui-btn-sm",
    ) -> Markup:
        """Render an ``admin-href`` action link for the admin shell."""
        template = self.template_env.get_template("action_link.html")
        return Markup(template.render(
            title=title,
            href=href,
            open_type=int(open_type),
            param_type=int(param_type),
            width=width,
            height=height,
            confirm=confirm,
            no_close=no_close,
            edit_form_id=edit_form_id,
            param_obj_id=param_obj_id,
            css_class=css_class,
        ))


_service: Optional[WidgetService] = None


def get_widget_service() -> WidgetService:
    """Return the process-wide widget service."""
    global _service
    if _service is None:
        _service = WidgetService()
    return _service
