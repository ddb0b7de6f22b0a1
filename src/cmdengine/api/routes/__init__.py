"""API routers."""

from cmdengine.api.routes.command import router as command_router

__all__ = ["command_router"]
