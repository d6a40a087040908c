"""Route modules mounted by the app factory."""
from .jobs import router as jobs_router

ROUTERS = [jobs_router]

__all__ = ["ROUTERS", "jobs_router"]
