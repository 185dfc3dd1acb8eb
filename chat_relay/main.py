from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from chat_relay.config import get_settings
from chat_relay.dependencies import ServiceContainer
from chat_relay.logging_config import get_logger, setup_logging
from chat_relay.routers import admin, webhook

settings = get_settings()
setup_logging(settings.log_level)

logger = get_logger("main")

BANNER = "Chat relay - live-chat webhook responder"


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """Build the app. A prebuilt container (tests) is opened and closed like the default one."""
    app = FastAPI(
        title="Chat Relay",
        description="Relays live-chat messages to a retrieval-augmented language model responder",
        version="0.1.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(webhook.router)
    app.include_router(admin.router)
    app.state.container = container

    @app.on_event("startup")
    async def open_services() -> None:
        if app.state.container is None:
            app.state.container = ServiceContainer.build(settings)
        await app.state.container.open()
        logger.info("Chat relay started", extra={"context": {"environment": settings.environment}})

    @app.on_event("shutdown")
    async def close_services() -> None:
        if app.state.container is not None:
            await app.state.container.close()

    @app.get("/")
    async def root():
        return {
            "message": BANNER,
            "version": app.version,
            "endpoints": {
                "webhook": "POST /api/webhook",
                "test": "POST /api/test",
                "status": "GET /api/status",
                "analytics": "GET /api/analytics",
                "health": "GET /health",
            },
        }

    @app.get("/health")
    async def health(request: Request):
        container: Optional[ServiceContainer] = request.app.state.container
        return {
            "status": "ok",
            "uptime": container.uptime_seconds() if container else 0.0,
        }

    return app


app = create_app()
