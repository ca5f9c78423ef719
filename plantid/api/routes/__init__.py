# API routes module
from plantid.api.routes.health import router as health_router
from plantid.api.routes.history import router as history_router
from plantid.api.routes.screen import router as screen_router

__all__ = ["health_router", "history_router", "screen_router"]
