from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from .. import __version__
from ..config import WaitroomConfig
from ..coordinator import Coordinator
from . import routes


def create_app(
    coordinator: Optional[Coordinator] = None, config: Optional[WaitroomConfig] = None
) -> FastAPI:
    """Build the HTTP application.

    When no coordinator is given one is built from ``config`` at startup.
    The coordinator is closed on shutdown either way.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.coordinator is None:
            app.state.coordinator = Coordinator.from_config(config)
        try:
            yield
        finally:
            await app.state.coordinator.close()

    app = FastAPI(title="Waitroom API", version=__version__, lifespan=lifespan)
    app.state.coordinator = coordinator
    app.include_router(routes.router)
    app.include_router(routes.health_router)
    return app
