import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ceats.core.config import CORS_ORIGINS, DATABASE_URL, ENV
from ceats.core.database import Base, engine
from ceats.core.logging_setup import configure_logging
from ceats.core.startup_checks import ensure_migrations_applied, validate_database_environment
from ceats.middleware.observability import ObservabilityMiddleware
import ceats.models  # registra los models antes del create_all
import ceats.services.event_handlers  # registra handlers del event bus

from ceats.routers.auth import router as auth_router
from ceats.routers.restaurantes import router as restaurantes_router
from ceats.routers.sucursales import router as sucursales_router
from ceats.routers.usuarios import router as usuarios_router
from ceats.routers.pedidos import router as pedidos_router
from ceats.routers.whatsapp import router as whatsapp_router
from ceats.routers.webhook import router as webhook_router
from ceats.routers.internal_metrics import router as internal_metrics_router

configure_logging()

logger = logging.getLogger(__name__)
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini")))


def _startup_tasks() -> None:
    validate_database_environment()
    if DATABASE_URL.startswith("sqlite"):
        # dev y tests: sin Alembic, el esquema sale de los models
        Base.metadata.create_all(bind=engine)
    ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
    logger.info("cEats API lista env=%s", ENV)


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="cEats API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # la API responde 400 (no 422) ante cuerpos incompletos o inválidos
    errors = [
        {"campo": ".".join(str(part) for part in error.get("loc", ()) if part != "body"), "error": error.get("msg")}
        for error in exc.errors()
    ]
    logger.info("Solicitud inválida %s %s errores=%s", request.method, request.url.path, len(errors))
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({"detail": "Faltan campos requeridos o son inválidos", "errors": errors}),
    )


app.include_router(auth_router)
app.include_router(restaurantes_router)
app.include_router(sucursales_router)
app.include_router(usuarios_router)
app.include_router(pedidos_router)
app.include_router(whatsapp_router)
app.include_router(webhook_router)
app.include_router(internal_metrics_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
