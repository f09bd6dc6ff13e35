"""Settlement FastAPI application.

Receives payment processor webhooks and delivery confirmations. Every
request under a settlement route runs inside the settlement domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the config overlay in settlement/domain.toml:
#   - unset / "test" → in-memory providers
#   - "production"   → PostgreSQL
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from settlement.domain import settlement  # noqa: E402
from settlement.utils.logging import configure_logging  # noqa: E402

configure_logging()
settlement.init()

# ---------------------------------------------------------------------------
# Route-to-domain mapping
# ---------------------------------------------------------------------------
_DOMAIN_PREFIXES = ("/webhooks", "/orders", "/processor", "/carrier")


def _in_domain(path: str) -> bool:
    """True when the request path belongs to a settlement router."""
    return path.startswith(_DOMAIN_PREFIXES)


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Settlement API",
    description="Marketplace order fulfillment and settlement",
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
    """Push the settlement domain context for each settlement request."""
    if _in_domain(request.url.path):
        with settlement.domain_context():
            response = await call_next(request)
        return response
    # Health check, docs, etc.
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from settlement.api import order_router, sandbox_router, webhook_router  # noqa: E402

app.include_router(webhook_router)
app.include_router(order_router)
app.include_router(sandbox_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": settlement.name})
