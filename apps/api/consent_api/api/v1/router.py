"""API v1 router combining all route modules."""

from fastapi import APIRouter

from consent_api.api.v1 import admin, consent, email, gdpr, health

api_router = APIRouter()

# Include health check routes (no prefix)
api_router.include_router(health.router)

# Cookie banner consent (anonymous)
api_router.include_router(
    consent.router,
    prefix="/consent",
    tags=["consent"],
)

# Newsletter subscription, verification and withdrawal
api_router.include_router(
    email.router,
    prefix="/email",
    tags=["email"],
)

# Data-subject requests (public, confirmed by emailed token)
api_router.include_router(
    gdpr.router,
    prefix="/gdpr",
    tags=["gdpr"],
)

# Admin dashboard (bearer JWT)
api_router.include_router(
    admin.router,
    prefix="/admin",
    tags=["admin"],
)
