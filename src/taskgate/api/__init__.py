"""TaskGate API module."""

from taskgate.api.router import router

__all__ = ["router"]
