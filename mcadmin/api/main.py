"""
FastAPI app assembly: logging, middleware, error mapping and router wiring.
"""
import logging
import os

from fastapi import Depends, FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.requests import Request
from starlette.responses import JSONResponse

# Configure logging
LOG_LEVEL_NAME = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL = getattr(logging, LOG_LEVEL_NAME, logging.INFO)
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)
logger.setLevel(LOG_LEVEL)
logger.info("app_startup: log_level=%s", LOG_LEVEL_NAME)

from mcadmin.api.forms import router as forms_router
from mcadmin.api.models import router as models_router
from mcadmin.db import errors
from mcadmin.db.database import get_db

app = FastAPI(
    title="MC Admin Service",
    description="Configuration-driven models, KV lists and admin form widgets over relational tables.",
    version="1.0.0",
)

# Avoid implicit trailing-slash redirects for predictable URLs
app.router.redirect_slashes = False


def _cors_origins():
    raw = os.getenv("CORS_ORIGINS", "http://localhost,http://localhost:3000,http://localhost:8000")
    return [o.strip() for o in raw.split(",") if o.strip()]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    errors.ModelConfigNotFoundError: status.HTTP_404_NOT_FOUND,
    errors.KvConfigNotFoundError: status.HTTP_404_NOT_FOUND,
    errors.RecordNotFoundError: status.HTTP_404_NOT_FOUND,
    errors.RecordExistsError: status.HTTP_409_CONFLICT,
    errors.ReadOnlyModelError: status.HTTP_405_METHOD_NOT_ALLOWED,
    errors.ModelConfigInvalidError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    errors.ConnectionNotFoundError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def config_model_error_handler(request: Request, exc: errors.ConfigModelError) -> JSONResponse:
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error("request_failed: method=%s path=%s error=%s", request.method, request.url.path, exc)
    else:
        logger.info("request_rejected: method=%s path=%s status=%d error=%s",
                    request.method, request.url.path, status_code, exc)
    return JSONResponse({"detail": str(exc)}, status_code=status_code)


app.add_exception_handler(errors.ConfigModelError, config_model_error_handler)

app.include_router(models_router)
app.include_router(forms_router)


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"status": "ok", "service": "mc-admin-service"}
