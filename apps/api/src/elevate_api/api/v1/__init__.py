from fastapi import APIRouter

from .endpoints import (
    health,
    kajabi_admin,
    kajabi_webhook,
    points,
    submissions,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(kajabi_webhook.router)
router.include_router(kajabi_admin.router)
router.include_router(submissions.router)
router.include_router(points.router)
