from fastapi import APIRouter

from app.api.routes import applications, health, mpesa, payments

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(applications.router)
api_router.include_router(payments.router)
api_router.include_router(mpesa.router)

__all__ = ["api_router"]
