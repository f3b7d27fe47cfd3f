"""
Main entrypoint: Backend Allowance FastAPI server.

Builds the app from environment settings (Para client when PARA_SECRET_KEY is
set, Stripe verifier when STRIPE_SECRET_KEY is set, JSON policy store at
POLICY_STORE_PATH) and serves it with uvicorn in the main thread.

Env: APP_ENV, PARA_SECRET_KEY, VITE_PARA_ENV, STRIPE_SECRET_KEY, POLICY_STORE_PATH, API_HOST, API_PORT, etc.

API-only (module app): uvicorn backend_allowance.api_server.app:app --host 0.0.0.0 --port 8000
"""

import os

# Configure structured JSON logging before other imports that may log
from backend_allowance.allowance_logging import get_logger

logger = get_logger("main")


def main() -> None:
    """Resolve settings, build the app and run the server."""
    from backend_allowance.config import get_settings
    from backend_allowance.config.env import print_allowance_startup

    print_allowance_startup("main")
    settings = get_settings()
    if settings.is_production and not settings.payments_configured:
        logger.warning(
            "main_payments_not_configured",
            message="STRIPE_SECRET_KEY not set: wallet creation is refused unless devMode is requested",
        )

    from backend_allowance.api_server.server import create_app
    import uvicorn

    app = create_app(settings)
    logger.info("main_server_starting", host=settings.api_host, port=settings.api_port)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=os.getenv("LOG_LEVEL", "info").lower())


if __name__ == "__main__":
    main()
