"""API routers for the back office."""

from . import approvals
from . import health

__all__ = [
    "approvals",
    "health",
]
