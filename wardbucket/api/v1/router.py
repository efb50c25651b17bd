"""
API v1 Router - aggregates all endpoint routers
"""
from fastapi import APIRouter

from wardbucket.api.v1.endpoints import geo, geo_admin
from wardbucket.schemas import ErrorResponse

# Every error is rendered in the same envelope
ERROR_RESPONSES = {
    status: {"model": ErrorResponse}
    for status in (400, 401, 403, 404, 409, 500)
}

api_router = APIRouter(responses=ERROR_RESPONSES)

# Include all endpoint routers
api_router.include_router(geo.router, prefix="/geo", tags=["Geo"])
api_router.include_router(geo_admin.router, prefix="/admin/geo", tags=["Geo Admin"])
