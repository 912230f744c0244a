#main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.providers.lightning.validate import validate_gateway_startup
from app.reconcile.factory import reset as reset_components
from db import close_pool
from middleware import RequestContextMiddleware
from routes.admin_reconcile import router as admin_reconcile_router
from routes.health import router as health_router
from routes.transactions import router as transactions_router
from services.observability import configure_logging
from settings import settings

logger = logging.getLogger("lnmomo")

configure_logging(settings.LOG_LEVEL)
validate_gateway_startup()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    reset_components()
    close_pool()


app = FastAPI(title="LN MoMo Bridge API", version="1.0.0", lifespan=lifespan)

app.add_middleware(RequestContextMiddleware)

# -----------------------------
# ROUTERS
# -----------------------------

app.include_router(transactions_router)
app.include_router(admin_reconcile_router)
app.include_router(health_router)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request", "errors": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error path=%s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
