"""
API v1 package.

Contains versioned API routes for registration review and email dispatch.
"""

from fastapi import APIRouter

from src.api.v1.dispatch import router as dispatch_router
from src.api.v1.routes import router as review_router

router = APIRouter()
router.include_router(review_router)
router.include_router(dispatch_router)

__all__ = ["router"]
