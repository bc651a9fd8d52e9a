from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI

from .api import health, telegram
from .config import settings
from .logging_config import setup_logging
from .services.runtime import BotRuntime

APP_NAME = "Chat Wallet Bot"
APP_VERSION = "0.1.0"


def create_app(
    runtime_factory: Callable[[], BotRuntime] = BotRuntime.build,
    polling: Optional[bool] = None,
) -> FastAPI:
    """Build the FastAPI app; the bot runtime lives for the app's lifespan."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        runtime = runtime_factory()
        await runtime.start(polling=polling)
        app.state.runtime = runtime
        try:
            yield
        finally:
            app.state.runtime = None
            await runtime.stop()

    app = FastAPI(
        title=APP_NAME,
        description="Custodial Hedera wallet driven by Telegram chat",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(telegram.router, tags=["Telegram"])

    @app.get("/")
    async def root():
        """Root endpoint with basic info"""
        return {
            "name": APP_NAME,
            "version": APP_VERSION,
            "health": "/healthz",
            "webhook": "/telegram/webhook",
        }

    return app


setup_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "chatwallet.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )
