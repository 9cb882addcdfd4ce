"""
Geuttae API Routers.

All routers are imported here for easy access.
"""

from geuttae.routers.circles import router as circles_router
from geuttae.routers.meetups import router as meetups_router
from geuttae.routers.pieces import router as pieces_router

__all__ = [
    "circles_router",
    "meetups_router",
    "pieces_router",
]
