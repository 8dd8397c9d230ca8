from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dancecart.core.config import Settings, settings as default_settings
from dancecart.core.logging import configure_logging
from dancecart.routers.basket import router as basket_router
from dancecart.routers.checkout import router as checkout_router
from dancecart.routers.session import router as session_router
from dancecart.services.sessions import SessionFactory, SessionRegistry, graphql_session_factory

log = structlog.get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[SessionFactory] = None,
) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings)
        log.info("app_started", graphql_url=settings.GRAPHQL_URL, currency=settings.CURRENCY)
        yield
        log.info("app_stopped", sessions=len(app.state.sessions))

    app = FastAPI(title="dancecart", lifespan=lifespan)
    app.state.sessions = SessionRegistry(session_factory or graphql_session_factory(settings))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(session_router)
    app.include_router(basket_router)
    app.include_router(checkout_router)

    @app.get("/health")
    async def health():
        return {"ok": True}

    return app


app = create_app()
