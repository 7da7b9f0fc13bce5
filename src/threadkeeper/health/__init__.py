"""Health check endpoints."""

from threadkeeper.health.router import router


__all__ = ["router"]
