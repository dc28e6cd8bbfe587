"""
API v1 Routes
Project: Rental Order Engine

Version 1 router of the API.
"""

from fastapi import APIRouter

from rental_engine.api.v1 import orders

# Aggregated v1 router
api_v1_router = APIRouter(prefix="/api/v1")

api_v1_router.include_router(orders.pricing_router)
api_v1_router.include_router(orders.availability_router)
api_v1_router.include_router(orders.router)

__all__ = ["api_v1_router"]
