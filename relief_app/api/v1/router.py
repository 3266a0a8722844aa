from fastapi import APIRouter

from relief_app.api.v1.health import router as health_router
from relief_app.api.v1.auth import router as auth_router
from relief_app.api.v1.cases import router as cases_router
from relief_app.api.v1.checker import router as checker_router
from relief_app.api.v1.admin import router as admin_router


v1_router = APIRouter()

# ------------------------------------------------------------------
# SYSTEM / CORE
# ------------------------------------------------------------------
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(auth_router, tags=["auth"])

# ------------------------------------------------------------------
# CASES (family, public listings, donations, audit)
# ------------------------------------------------------------------
v1_router.include_router(cases_router, tags=["cases"])

# ------------------------------------------------------------------
# REVIEW
# ------------------------------------------------------------------
v1_router.include_router(checker_router, tags=["checker"])
v1_router.include_router(admin_router, tags=["admin"])
