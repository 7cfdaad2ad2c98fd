"""
Form endpoints.

Server-rendered search and edit forms for the admin shell.
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import HTMLResponse

from mcadmin.api.deps import get_config_model, skip_row_auth
from mcadmin.api.models import search_values_from_request
from mcadmin.db.config_model import ConfigModel
from mcadmin.services.widget_service import get_widget_service

router = APIRouter(prefix="/models", tags=["forms"])


@router.get("/{name}/search-form", response_class=HTMLResponse)
def search_form_endpoint(request: Request, model: ConfigModel = Depends(get_config_model)):
    html = get_widget_service().render_search_form(
        model, search_values_from_request(request), not_row_auth=skip_row_auth(model)
    )
    return HTMLResponse(content=str(html))


@router.get("/{name}/edit-form", response_class=HTMLResponse)
def edit_form_endpoint(request: Request, model: ConfigModel = Depends(get_config_model)):
    """Blank form for a new record, or the record named by the pk query param."""
    record = None
    pk = model.config.pk
    pk_value = request.query_params.get(pk) if pk else None
    if pk_value:
        record = model.get(pk_value, not_row_auth=skip_row_auth(model))
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")
    html = get_widget_service().render_edit_form(model, record, not_row_auth=skip_row_auth(model))
    return HTMLResponse(content=str(html))
