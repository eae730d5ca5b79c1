"""API routers."""

from app.routers.squads import router as squads_router

__all__ = ["squads_router"]
