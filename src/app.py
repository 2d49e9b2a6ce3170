"""Trackside fulfillment FastAPI application.

Processes commands synchronously over HTTP. Every request runs inside the
fulfillment domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the config overlay from domain.toml:
#   - "test"/unset → in-memory providers, events handled in the UoW
#   - "production" → Postgres, events handled by the Engine (src/server.py)
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fulfillment.domain import fulfillment
from fulfillment.utils.logging import clear_context

fulfillment.init()

_DOMAIN_PREFIXES = ("/orders", "/deliveries", "/agents")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Trackside Fulfillment API",
    description="Order fulfillment, delivery dispatch and agent earnings",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the fulfillment domain context for API requests."""
    clear_context()
    if request.url.path.startswith(_DOMAIN_PREFIXES):
        with fulfillment.domain_context():
            response = await call_next(request)
        return response
    # Health check, docs and the like need no domain
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from fulfillment.api import (  # noqa: E402
    agent_router,
    delivery_router,
    order_router,
    register_error_handlers,
)

app.include_router(order_router)
app.include_router(delivery_router)
app.include_router(agent_router)
register_error_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domain": fulfillment.name,
        }
    )
