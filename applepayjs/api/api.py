from fastapi import APIRouter

from applepayjs.api.endpoints import applepay, home

api_router = APIRouter()

api_router.include_router(home.router)

# Full path: /applepay/validate
api_router.include_router(applepay.router)
