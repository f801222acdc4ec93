"""
PharmaStock Backend: pharmacy inventory and point of sale.

ARCHITECTURE:
- FastAPI: thin data API over the allocation/reconciliation engine
- services/: engine (stock_ledger, batch_selector, allocation,
  sale_composer, bulk_import) plus the SQLAlchemy repository
- SQLite/PostgreSQL: source of truth for available quantities

STOCK MODEL:
- Sales are composed client-side and validated against live stock
- The repository performs the authoritative check at submit time
- Bulk imports report per row; one bad row never aborts a run
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pharmastock.api.routes import history, imports, medicines, reports, sales
from pharmastock.core.config import settings
from pharmastock.core.exceptions import BusinessError, InventoryError
from pharmastock.db.init_db import init_db

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: make sure the schema exists."""
    logger.info("Initializing database...")
    init_db()
    logger.info("Database initialized")
    yield


app = FastAPI(
    title="PharmaStock API",
    description="Medicine batches, FEFO sales and bulk stock reconciliation.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Accept",
        "Origin",
    ],
    max_age=600,
    expose_headers=["Content-Type", "Content-Disposition"],
)


@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):
    """Typed engine errors become 400/404/409/503 with a machine-readable body."""
    http_exc = BusinessError.from_domain(exc)
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


app.include_router(medicines.router, prefix="/medicines", tags=["medicines"])
app.include_router(sales.router, prefix="/sales", tags=["sales"])
app.include_router(imports.router, tags=["imports"])
app.include_router(reports.router, prefix="/reports", tags=["reports"])
app.include_router(history.router, prefix="/history", tags=["history"])


@app.get("/health")
def health():
    return {"status": "ok"}
