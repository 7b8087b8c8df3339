"""Application entrypoint for the loan ledger FastAPI service."""

from typing import Optional

from fastapi import FastAPI
import uvicorn

from .api.router import build_ledger_router
from .core.config import AppSettings, load_settings
from .core.logging_config import get_logger, setup_logging
from .services.ledger_facade import LedgerFacade


setup_logging()
logger = get_logger(__name__)


def create_app(settings: Optional[AppSettings] = None, facade: Optional[LedgerFacade] = None) -> FastAPI:
    """Create and configure a FastAPI application instance."""
    settings = settings or load_settings()
    facade = facade or LedgerFacade.build(settings)
    app = FastAPI(title=settings.app_name, debug=settings.debug)
    app.state.ledger = facade
    app.include_router(build_ledger_router(facade))
    logger.info("Application initialized: %s", settings.app_name)
    return app


def run() -> None:
    """Start the ASGI server for local development."""
    settings = load_settings()
    try:
        uvicorn.run(
            "loan_ledger.main:create_app",
            factory=True,
            host=settings.host,
            port=settings.port,
            reload=settings.debug,
        )
    except Exception:
        logger.exception("Failed to start uvicorn server.")
        raise


if __name__ == "__main__":
    run()
