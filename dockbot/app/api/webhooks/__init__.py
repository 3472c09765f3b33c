"""
Webhook routers.
"""

from .telegram import router as telegram_router

__all__ = ["telegram_router"]
