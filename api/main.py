"""
FeastFleet — FastAPI Backend
Food-delivery marketplace: customers, restaurants, riders, admin settlements.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config import settings
from db.database import engine, SessionLocal
from routers import admin, common, customers, payments, restaurants, riders, webhooks
from services.errors import DomainError
from services.outbox_worker import run_outbox_worker
from services.scheduler import (
    settlement_loop, draft_sweep_loop, reconcile_loop, auto_stop_loop, auto_schedule_loop,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    stop = asyncio.Event()
    tasks = []
    if settings.RUN_BACKGROUND_WORKERS:
        tasks = [
            asyncio.create_task(run_outbox_worker(SessionLocal, stop), name="outbox"),
            asyncio.create_task(settlement_loop(SessionLocal, stop), name="weekly-settlement"),
            asyncio.create_task(draft_sweep_loop(SessionLocal, stop), name="draft-sweep"),
            asyncio.create_task(reconcile_loop(SessionLocal, stop), name="payment-reconcile"),
            asyncio.create_task(auto_stop_loop(SessionLocal, stop), name="restaurant-auto-stop"),
            asyncio.create_task(auto_schedule_loop(SessionLocal, stop), name="restaurant-auto-schedule"),
        ]
    logger.info("🚀 FeastFleet API starting (%d background workers)", len(tasks))
    yield
    stop.set()
    await asyncio.gather(*tasks, return_exceptions=True)
    await engine.dispose()
    logger.info("🛑 FeastFleet API shut down.")


app = FastAPI(
    title="FeastFleet API",
    description="Food-delivery marketplace backend",
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ───────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


# ── Routers ────────────────────────────────────────────────
app.include_router(common.router, prefix="/api", tags=["Common"])
app.include_router(customers.router, prefix="/api/customers", tags=["Customers"])
app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])
app.include_router(restaurants.router, prefix="/api/restaurants", tags=["Restaurants"])
app.include_router(riders.router, prefix="/api/riders", tags=["Riders"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])
app.include_router(webhooks.router, prefix="/api/webhooks", tags=["Webhooks"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "FeastFleet API"}


@app.get("/health/db")
async def health_db():
    """Verify the database answers."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as e:
        logger.warning("DB health check failed: %s", e)
        return {"status": "error", "detail": str(e)}
