"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nullwallet import __version__
from nullwallet.config import get_settings
from nullwallet.errors import WalletError
from nullwallet.ledger.database import close_db, get_session_factory, init_db
from nullwallet.services.factory import TransferServices, build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    await init_db()
    if app.state.services is None:
        app.state.services = build_services(get_settings(), get_session_factory())
    yield
    # Shutdown
    await close_db()


async def wallet_error_handler(request: Request, exc: WalletError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = ", ".join(".".join(str(p) for p in err["loc"][1:]) or "body" for err in exc.errors())
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "InvalidRequest", "details": f"Invalid fields: {fields}"},
    )


def create_app(services: Optional[TransferServices] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        services: pre-built services; built in the lifespan when omitted
    """
    settings = get_settings()

    app = FastAPI(
        title="NullWallet API",
        description="Multi-chain custodial wallet backend",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.services = services

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(WalletError, wallet_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Register routes
    from nullwallet.api.routes import health, nullnet, wallet

    app.include_router(health.router, tags=["Health"])
    app.include_router(wallet.router, tags=["Wallet"])
    app.include_router(nullnet.router, tags=["NullNet"])

    return app
