"""
Model API endpoints.

Descriptor introspection, KV lists for dropdowns/trees, and paged record
reads and writes for any configured model.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status

from mcadmin.api.deps import get_config_model, skip_row_auth
from mcadmin.db import schemas
from mcadmin.db.config import get_file_config, list_config_names
from mcadmin.db.config_model import LEVEL_KEY, KEY_LABEL, VALUE_LABEL, ConfigModel, KvsSearchOption
from mcadmin.db.errors import ReadOnlyModelError, RecordNotFoundError
from mcadmin.utils.strings import split_fields

router = APIRouter(prefix="/models", tags=["models"])

RESERVED_QUERY_PARAMS = frozenset({"page", "page_size", "order"})


def search_values_from_request(request: Request) -> Dict[str, Any]:
    """Collect search values from the query string; repeated keys become lists."""
    values: Dict[str, Any] = {}
    for key in request.query_params.keys():
        if key in RESERVED_QUERY_PARAMS or key in values:
            continue
        items = request.query_params.getlist(key)
        values[key] = items if len(items) > 1 else items[0]
    return values


def sortable_order(model: ConfigModel, order: Optional[str]) -> Optional[str]:
    """Translate ``name`` or ``-name`` into an ORDER BY for a sortable list field."""
    if not order:
        return None
    name = order.lstrip("-")
    sortable = {f.name for f in model.config.fields if f.sortable}
    if name not in sortable:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Field '{name}' is not sortable")
    direction = " DESC" if order.startswith("-") else ""
    return f"{model.field_add_alias(name)}{direction}"


@router.get("", response_model=List[str], include_in_schema=False)
@router.get("/", response_model=List[str])
def list_models_endpoint():
    return list_config_names()


@router.get("/{name}")
def get_model_config_endpoint(name: str):
    return get_file_config(name).model_dump()


@router.get("/{name}/kvs", response_model=schemas.KvList)
def get_kvs_endpoint(
    kv: str = "default",
    return_path: bool = False,
    indent: str = "",
    extra_fields: Optional[str] = None,
    model: ConfigModel = Depends(get_config_model),
):
    option = KvsSearchOption(
        kv_name=kv,
        return_path=return_path,
        indent=indent,
        not_row_auth=skip_row_auth(model),
        extra_fields=split_fields(extra_fields),
    )
    kvs = model.get_kvs(option)
    items = [
        schemas.KvItem(
            key=key,
            value=row.get(VALUE_LABEL),
            level=row.get(LEVEL_KEY),
            row={k: v for k, v in row.items() if k not in (KEY_LABEL, VALUE_LABEL, LEVEL_KEY)},
        )
        for key, row in kvs.items()
    ]
    return schemas.KvList(model=model.config.name, kv=option.kv_name, items=items)


@router.get("/{name}/records", response_model=schemas.RecordPage)
def list_records_endpoint(
    request: Request,
    page: int = Query(default=1, ge=1),
    page_size: Optional[int] = Query(default=None, ge=1),
    order: Optional[str] = None,
    model: ConfigModel = Depends(get_config_model),
):
    rows, total = model.find(
        search_values=search_values_from_request(request),
        page=page,
        page_size=page_size,
        order=sortable_order(model, order),
        not_row_auth=skip_row_auth(model),
    )
    _, size = model.page_bounds(page, page_size)
    return schemas.RecordPage(items=rows, total=total, page=page, page_size=size)


@router.get("/{name}/records/{pk_value}")
def get_record_endpoint(pk_value: str, model: ConfigModel = Depends(get_config_model)):
    record = model.get(pk_value, not_row_auth=skip_row_auth(model))
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")
    return record


@router.post("/{name}/records", response_model=schemas.WriteResult, status_code=status.HTTP_201_CREATED)
def create_record_endpoint(
    payload: Dict[str, Any] = Body(...),
    model: ConfigModel = Depends(get_config_model),
):
    new_id = model.create(payload)
    return schemas.WriteResult(msg="Record created", id=new_id, affected=1)


@router.put("/{name}/records/{pk_value}", response_model=schemas.WriteResult)
def update_record_endpoint(
    pk_value: str,
    payload: Dict[str, Any] = Body(...),
    model: ConfigModel = Depends(get_config_model),
):
    if model.get(pk_value, not_row_auth=skip_row_auth(model)) is None:
        raise RecordNotFoundError(model.config.name, pk_value)
    affected = model.update(payload, pk_value)
    return schemas.WriteResult(msg="Record updated", id=pk_value, affected=affected)


@router.delete("/{name}/records", response_model=schemas.WriteResult)
def delete_records_endpoint(request: Request, model: ConfigModel = Depends(get_config_model)):
    if model.config.read_only:
        raise ReadOnlyModelError(model.config.name)
    ids = request.query_params.getlist(model.config.pk)
    if not ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No records selected")
    affected = model.delete(model.visible_pks(ids, not_row_auth=skip_row_auth(model)))
    return schemas.WriteResult(msg="Records deleted", affected=affected)
