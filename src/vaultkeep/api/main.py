# API Module - FastAPI Application
#
# Builds the app, registers routers and maps the error taxonomy onto HTTP:
#   GrantError        -> 400 {error, error_description}     (token endpoint)
#   VaultError        -> status_code + error envelope
#   request validation-> 400 error envelope
#   anything else     -> 500 error envelope, logged with traceback

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..core.errors import AuthError, GrantError, VaultError
from .account_routes import router as account_router
from .cipher_routes import router as cipher_router
from .config_routes import router as config_router
from .deps import Services, set_services
from .device_routes import router as device_router
from .identity_routes import router as identity_router
from .sync_routes import router as sync_router

logger = logging.getLogger(__name__)


def _envelope(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=VaultError(message).to_envelope())


async def grant_error_handler(request: Request, exc: GrantError) -> JSONResponse:
    logger.info("Token endpoint refused: %s (%s)", exc.error, exc.reason)
    return JSONResponse(status_code=exc.status_code, content=exc.to_oauth())


async def vault_error_handler(request: Request, exc: VaultError) -> JSONResponse:
    headers = None
    if isinstance(exc, AuthError):
        headers = {"WWW-Authenticate": 'Bearer error="invalid_token"'}
    elif exc.status_code >= 500:
        logger.error("Upstream failure on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = str(errors[0].get("msg")) if errors else "Invalid request"
    return _envelope(400, message)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _envelope(500, "Internal server error")


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        services: Service container to install; when omitted the container
            is built from the environment on first request.
    """
    if services is not None:
        set_services(services)

    application = FastAPI(
        title="vaultkeep",
        description="Self-hosted sync server for end-to-end encrypted password vaults",
        version=__version__,
    )

    # Browser extensions call from their own origins with bearer tokens
    # (no cookies), so any origin is allowed.
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(GrantError, grant_error_handler)
    application.add_exception_handler(VaultError, vault_error_handler)
    application.add_exception_handler(RequestValidationError, request_validation_handler)
    application.add_exception_handler(Exception, unhandled_error_handler)

    application.include_router(config_router)
    application.include_router(identity_router)
    application.include_router(account_router)
    application.include_router(sync_router)
    application.include_router(cipher_router)
    application.include_router(device_router)
    return application


app = create_app()
