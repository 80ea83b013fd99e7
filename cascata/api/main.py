"""
CASCATA SLA API - Ponto de Entrada
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cascata.config import get_settings
from cascata.domain.exceptions import NotFoundError, StoreUnavailableError
from cascata.infrastructure.database import init_db
from cascata.infrastructure.logging_config import setup_logging
from cascata.infrastructure.scheduler import create_scheduler, start_scheduler, stop_scheduler
from cascata.api.routes import health_router, sla_cascata_router, sla_dashboard_router

settings = get_settings()
logger = logging.getLogger(__name__)


# ============================================================
# 🔁 LIFESPAN
# ============================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(json_logs=settings.json_logs, level=logging.DEBUG if settings.debug else logging.INFO)
    logger.info("🚀 Iniciando Cascata SLA API...")

    await init_db()
    logger.info("✅ Tabelas criadas!")

    if settings.scheduler_enabled:
        create_scheduler(settings)
        start_scheduler()

    yield

    stop_scheduler()
    logger.info("👋 Encerrando Cascata SLA API...")


# ============================================================
# FASTAPI APP
# ============================================================
app = FastAPI(
    title="Cascata SLA API",
    description="Distribuição de leads em cascata com prazo (SLA) por nível",
    version="0.1.0",
    lifespan=lifespan,
)


# ============================================================
# ERROS DE DOMÍNIO → HTTP
# ============================================================
@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    logger.error(f"❌ Banco indisponível em {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Banco de dados indisponível, tente novamente"})


# ============================================================
# ROTAS
# ============================================================
app.include_router(sla_cascata_router, prefix="/api/v1")
app.include_router(sla_dashboard_router, prefix="/api/v1")
app.include_router(health_router)


@app.get("/")
async def root():
    return {"status": "online", "message": "Cascata SLA API"}
