"""
API v1 package initialization.

Collects the fulfillment routers under a single router mounted at the API
prefix.
"""

from fastapi import APIRouter

from fulfillment.api.v1.deliveries import router as deliveries_router
from fulfillment.api.v1.invoices import router as invoices_router
from fulfillment.api.v1.orders import router as orders_router
from fulfillment.api.v1.rider import router as rider_router

api_router = APIRouter()
api_router.include_router(orders_router)
api_router.include_router(deliveries_router)
api_router.include_router(rider_router)
api_router.include_router(invoices_router)

__all__ = ["api_router"]
