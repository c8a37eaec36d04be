"""Exception handlers: render CheckoutError as JSON with its status code."""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from checkout.errors import CheckoutError
from checkout.logging import get_logger

logger = get_logger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CheckoutError)
    async def checkout_error_handler(request: Request, exc: CheckoutError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
