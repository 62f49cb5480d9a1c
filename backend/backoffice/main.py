import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backoffice.config import settings
from backoffice.middleware.exceptions import register_exception_handlers
from backoffice.routers import expenses, health, invoices
from backoffice.services.scheduler import lifespan

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="SVS Back-Office",
    description="Maritime services back-office: invoicing and expenses",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(invoices.router, prefix="/api/invoices", tags=["invoices"])
app.include_router(expenses.router, prefix="/api/expenses", tags=["expenses"])
