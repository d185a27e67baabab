"""HTTP routers package."""

from .refresh_router import RunErrorResponse, RunListResponse, create_refresh_router

__all__ = [
    "create_refresh_router",
    "RunErrorResponse",
    "RunListResponse",
]
