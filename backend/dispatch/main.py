from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dispatch.config import settings
from dispatch.core.database import engine, Base
from dispatch.core.errors import (
    CapacityExceeded,
    DispatchError,
    ForbiddenError,
    NotFoundError,
    PreconditionError,
    StorageError,
    TransitionError,
    ValidationError,
)
from dispatch.core.logging_config import setup_logging, get_logger
from dispatch.api.auth import router as auth_router
from dispatch.api.catalog import router as catalog_router
from dispatch.api.dashboard import router as dashboard_router
from dispatch.api.loadings import router as loadings_router
from dispatch.api.releases import router as releases_router
from dispatch.api.schedules import router as schedules_router
from dispatch.api.stock import router as stock_router

setup_logging()
logger = get_logger(__name__)

ERROR_STATUS = (
    (ValidationError, 400),
    (ForbiddenError, 403),
    (NotFoundError, 404),
    (TransitionError, 409),
    (CapacityExceeded, 409),
    (PreconditionError, 409),
    (StorageError, 502),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Таблицы БД проверены/созданы")
    yield
    await engine.dispose()


app = FastAPI(title="Expedição: liberações, agendamentos, carregamentos", version="1.0.0", lifespan=lifespan)


@app.exception_handler(DispatchError)
async def dispatch_error_handler(request: Request, exc: DispatchError):
    status_code = 400
    for cls, code in ERROR_STATUS:
        if isinstance(exc, cls):
            status_code = code
            break
    logger.info("%s %s -> %s %s: %s", request.method, request.url.path, status_code, exc.code, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Необработанная ошибка: %s", exc)
    detail = "Внутренняя ошибка сервера"
    err_str = str(exc).lower()
    if "duplicate key" in err_str or "unique constraint" in err_str:
        detail = "Конфликт данных (дубликат). Обновите страницу и повторите."
    elif "foreign key" in err_str or "violates foreign key" in err_str:
        detail = "Ошибка связи с данными (например, продукт или склад не найден)."
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
    )


_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(auth_router)
app.include_router(catalog_router)
app.include_router(releases_router)
app.include_router(schedules_router)
app.include_router(loadings_router)
app.include_router(stock_router)
app.include_router(dashboard_router)


@app.get("/health")
def health():
    return {"status": "ok"}
