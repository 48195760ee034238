"""API routers."""
from .endpoints import router as endpoints_router

__all__ = ["endpoints_router"]
