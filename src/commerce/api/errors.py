"""Map domain and infrastructure errors onto HTTP responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError

from commerce.errors import (
    IllegalTransition,
    InsufficientStock,
    InvalidState,
    ProviderUnavailable,
    SignatureInvalid,
    StalePricing,
)
from commerce.shared.money import MoneyError

logger = structlog.get_logger(__name__)

CONFLICT_ERRORS = (InvalidState, IllegalTransition, StalePricing, InsufficientStock)


async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    status_code = 409 if isinstance(exc, CONFLICT_ERRORS) else 400
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": exc.messages},
    )


async def _not_found(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "NotFound", "detail": str(exc)})


async def _provider_unavailable(request: Request, exc: ProviderUnavailable) -> JSONResponse:
    logger.warning("Payment provider unavailable", provider=exc.provider, reason=exc.reason, path=request.url.path)
    return JSONResponse(
        status_code=503,
        content={"error": "ProviderUnavailable", "detail": str(exc), "retryable": True},
        headers={"Retry-After": "30"},
    )


async def _signature_invalid(request: Request, exc: SignatureInvalid) -> JSONResponse:
    logger.warning("Webhook signature rejected", provider=exc.provider, reason=exc.reason)
    return JSONResponse(status_code=401, content={"error": "SignatureInvalid", "detail": "Invalid webhook signature"})


async def _money_error(request: Request, exc: MoneyError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": type(exc).__name__, "detail": str(exc)})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(ObjectNotFoundError, _not_found)
    app.add_exception_handler(ProviderUnavailable, _provider_unavailable)
    app.add_exception_handler(SignatureInvalid, _signature_invalid)
    app.add_exception_handler(MoneyError, _money_error)
