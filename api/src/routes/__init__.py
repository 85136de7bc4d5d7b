from api.src.routes.health import router as health_router
from api.src.routes.generations import router as generations_router
from api.src.routes.usage import router as usage_router

__all__ = ["health_router", "generations_router", "usage_router"]
