"""
API Routes
Project: Rental Order Engine

Aggregates the versioned routers.
"""

from rental_engine.api.v1 import api_v1_router

__all__ = ["api_v1_router"]
