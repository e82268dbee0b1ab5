"""
ClimbApp Backend — Climbing Site Route Handlers
===============================================

What:  /api/v1/sites — list, read, create, replace and delete climbing sites.
How:   Extracts path/query/body data, delegates to SiteService, sets status
       codes and headers.
Who:   Called by the mobile app's site browser and by catalog tooling.

Status codes:
    GET    /            200 (+ X-Total-Count)
    GET    /{site_id}   200 | 404
    POST   /            201 (+ Location) | 400
    PUT    /{site_id}   204 | 400 | 404
    DELETE /{site_id}   204 (also when the site does not exist)
"""

import logging

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from climbapp.database import get_db_session
from climbapp.schemas.climbing import (
    ClimbingSiteListResponse,
    ClimbingSiteResponse,
    CreateClimbingSiteRequest,
    UpdateClimbingSiteRequest,
)
from climbapp.schemas.common import ErrorResponse
from climbapp.services.site_service import site_service

logger = logging.getLogger(__name__)

# ── Router Configuration ──────────────────────────────────────────────────
router = APIRouter(prefix="/api/v1/sites", tags=["Sites"])


@router.get(
    "",
    response_model=ClimbingSiteListResponse,
    responses={500: {"description": "Server error", "model": ErrorResponse}},
    summary="List climbing sites",
)
async def list_sites(
    response: Response,
    offset: int = Query(default=0, ge=0, description="Number of sites to skip"),
    limit: int = Query(default=50, ge=1, le=200, description="Sites per page (max 200)"),
    db: AsyncSession = Depends(get_db_session),
) -> ClimbingSiteListResponse:
    """Sites ordered by name; the total count is also sent as X-Total-Count."""
    result = await site_service.list_sites(db=db, offset=offset, limit=limit)
    response.headers["X-Total-Count"] = str(result.total_count)
    return result


@router.get(
    "/{site_id}",
    name="get_climbing_site",
    response_model=ClimbingSiteResponse,
    responses={404: {"description": "Site not found", "model": ErrorResponse}},
    summary="Get a climbing site with its routes",
)
async def get_site(
    site_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> ClimbingSiteResponse:
    site = await site_service.get_site(db, site_id)
    return ClimbingSiteResponse.model_validate(site)


@router.post(
    "",
    status_code=201,
    response_model=ClimbingSiteResponse,
    responses={400: {"description": "Invalid request body", "model": ErrorResponse}},
    summary="Create a climbing site",
)
async def create_site(
    body: CreateClimbingSiteRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
) -> ClimbingSiteResponse:
    site = await site_service.create_site(db, body)
    response.headers["Location"] = str(request.url_for("get_climbing_site", site_id=site.id))
    return ClimbingSiteResponse.model_validate(site)


@router.put(
    "/{site_id}",
    status_code=204,
    response_class=Response,
    responses={
        400: {"description": "Invalid request body", "model": ErrorResponse},
        404: {"description": "Site not found", "model": ErrorResponse},
    },
    summary="Replace a climbing site's name and description",
)
async def update_site(
    site_id: str,
    body: UpdateClimbingSiteRequest,
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await site_service.update_site(db, site_id, body)
    return Response(status_code=204)


@router.delete(
    "/{site_id}",
    status_code=204,
    response_class=Response,
    summary="Delete a climbing site, its routes and their recognition targets",
)
async def delete_site(
    site_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await site_service.delete_site(db, site_id)
    return Response(status_code=204)
