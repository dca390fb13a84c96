"""
API route modules
"""

from placecache.api.routes import (
    health,
    places,
    cache
)

__all__ = [
    "health",
    "places",
    "cache"
]
