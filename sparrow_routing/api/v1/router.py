from fastapi import APIRouter

from sparrow_routing.api.v1.endpoints import routes

api_router = APIRouter()
api_router.include_router(routes.router)
