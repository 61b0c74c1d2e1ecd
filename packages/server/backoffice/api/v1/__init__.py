"""
API v1 Router

All endpoints require an authenticated principal.
"""

from fastapi import APIRouter
from . import projects, teams

router = APIRouter()

router.include_router(teams.router, prefix="/teams", tags=["Teams"])
router.include_router(projects.router, prefix="/projects", tags=["Projects"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/teams",
            "/teams/{teamId}/members",
            "/projects",
            "/projects/{projectId}/role",
            "/projects/{projectId}/members",
        ],
    }
