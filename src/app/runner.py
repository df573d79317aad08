"""Entry point of the page usage ledger HTTP service."""
import uvicorn
from config import get_settings
from .core.database import setup_database
from .web.server import create_usage_app

settings = get_settings()
logger = settings.logger


def run_application():
    """Prepares the database and serves the HTTP API."""
    setup_database()
    asgi_app = create_usage_app()
    logger.info(
        "Starting page usage service on %s:%s (env=%s)",
        settings.API_LISTEN,
        settings.API_PORT,
        settings.APP_ENV,
    )
    uvicorn.run(asgi_app, host=settings.API_LISTEN, port=settings.API_PORT)


if __name__ == "__main__":
    run_application()
