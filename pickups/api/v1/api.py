from fastapi import APIRouter
from pickups.api.v1.routes.pickups import router as pickups_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(pickups_router)
