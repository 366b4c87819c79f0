"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.records import router as records_router

__all__ = [
    "records_router",
]
