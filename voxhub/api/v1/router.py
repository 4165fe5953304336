from fastapi import APIRouter

from voxhub.api.v1.endpoints import health, storage

api_router = APIRouter()
api_router.include_router(storage.router)
api_router.include_router(health.router)
