"""Settlement API package."""

from settlement.api.routes import order_router, sandbox_router, webhook_router

__all__ = ["webhook_router", "order_router", "sandbox_router"]
