"""Dropship pipeline FastAPI application.

Serves the payment, supplier and auction webhooks, the cron-triggered sweep
and sourcing runs, and read-only Lot queries. Every request runs inside the
dropship domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the configuration overlay; ADAPTERS selects fake or
# live external adapters.
from dropship.container import build_adapters
from dropship.domain import dropship
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

dropship.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Dropship Pipeline API",
    description="Auction dropship fulfillment and reconciliation",
)

# External clients are built once per process and shared through app.state
app.state.adapters = build_adapters()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the dropship domain context for each request."""
    with dropship.domain_context():
        response = await call_next(request)
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from dropship.api import cron_router, lot_router, webhook_router  # noqa: E402

app.include_router(webhook_router)
app.include_router(cron_router)
app.include_router(lot_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    settings = app.state.adapters.settings
    return JSONResponse(
        content={
            "status": "ok",
            "domain": dropship.name,
            "environment": settings.environment,
            "adapters": settings.adapters,
        }
    )
