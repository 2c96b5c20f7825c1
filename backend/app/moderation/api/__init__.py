"""Moderation API routers."""

from fastapi import APIRouter

from . import content
from .admin import admin_items, admin_queue, admin_spam

router = APIRouter()
router.include_router(admin_queue.router)
router.include_router(admin_items.router)
router.include_router(admin_spam.router)
router.include_router(content.router)

__all__ = ["router"]
