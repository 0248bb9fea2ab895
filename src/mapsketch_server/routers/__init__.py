"""API routers for the file service."""

from mapsketch_server.routers.files import router as files_router

__all__ = ["files_router"]
