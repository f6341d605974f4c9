"""API v1 router aggregator.

All v1 endpoint routers are included here and mounted at /api/v1.
"""

from fastapi import APIRouter

from app.api.v1 import magic_link

router = APIRouter()

# =============================================================================
# Authentication
# =============================================================================

router.include_router(magic_link.router, prefix="/magic-link", tags=["magic-link"])
