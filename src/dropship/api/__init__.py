"""Dropship API package."""

from dropship.api.routes import cron_router, lot_router, webhook_router

__all__ = ["webhook_router", "cron_router", "lot_router"]
