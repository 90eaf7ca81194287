"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Auth is applied at the include_router level using FastAPI's
dependencies parameter. Admin routes require the admin key; viewer
routes verify the extension JWT per handler because /catalog is public.
"""

from fastapi import APIRouter, Depends

from mxeaez.api.admin import router as admin_router
from mxeaez.api.health import router as health_router
from mxeaez.api.shop import router as shop_router
from mxeaez.auth.dependencies import require_admin

api_router = APIRouter()

# Open routes: no auth
api_router.include_router(health_router, tags=["health"])

# Viewer routes: extension JWT checked per route
api_router.include_router(shop_router, tags=["shop"])

# Admin routes: x-admin-key required
api_router.include_router(admin_router, tags=["admin"], dependencies=[Depends(require_admin)])
