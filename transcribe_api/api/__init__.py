"""
API routers
"""

from .monitoring import health_router, router as monitoring_router
from .rate import router as rate_router
from .transcripts import router as transcripts_router
from .upload import router as upload_router

__all__ = [
    "health_router",
    "monitoring_router",
    "rate_router",
    "transcripts_router",
    "upload_router",
]
