"""Main API router that aggregates all route modules."""

from fastapi import APIRouter

from sealedlove.api import auth, contact, health

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(contact.router, prefix="/contact", tags=["contact"])
