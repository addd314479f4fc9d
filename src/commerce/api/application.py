"""FastAPI application factory for the commerce domain."""

from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from commerce.api.admin import admin_router
from commerce.api.checkout import checkout_router, shipping_router
from commerce.api.errors import register_exception_handlers
from commerce.api.orders import order_router, provider_router
from commerce.api.webhooks import webhook_router
from commerce.domain import commerce
from commerce.utils.logging import add_context, clear_context
from commerce.wiring import Container


def create_api(container: Container, domain=commerce) -> FastAPI:
    """Build the HTTP surface around an already wired container.

    ``domain`` must be initialized; each request runs inside its context.
    """
    app = FastAPI(
        title="Commerce API",
        description="Checkout, orders, payments and provider webhooks",
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        """Push the domain context and bind request-scoped log context."""
        clear_context()
        add_context(
            request_id=request.headers.get("x-request-id") or uuid4().hex,
            method=request.method,
            path=request.url.path,
        )
        with domain.domain_context():
            response = await call_next(request)
        return response

    register_exception_handlers(app)

    app.include_router(checkout_router)
    app.include_router(shipping_router)
    app.include_router(order_router)
    app.include_router(provider_router)
    app.include_router(admin_router)
    app.include_router(webhook_router)

    @app.get("/health")
    async def health():
        return JSONResponse(
            content={
                "status": "ok",
                "domain": domain.name,
                "environment": container.settings.environment,
                "providers": [info.type.value for info in container.payment_router.list_available_providers()],
            }
        )

    return app
