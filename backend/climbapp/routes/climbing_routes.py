"""
ClimbApp Backend — Climbing Route Handlers
==========================================

What:  /api/v1/sites/{site_id}/routes — the routes of one climbing site.
How:   Delegates to RouteService; a missing site or route surfaces as
       NotFoundError and is rendered as 404 by the global handler.
Who:   Called by the mobile app and by catalog tooling.

Status codes:
    GET    /              200 | 404 (site)
    GET    /{route_id}    200 | 404 (site or route)
    POST   /              201 (+ Location) | 400 | 404 (site)
    PUT    /{route_id}    204 | 400 | 404 (site or route)
    DELETE /{route_id}    204 (missing site or route included)

Creating a route with `image` also registers the photo for recognition, so
the request may fail with 503 when Google Cloud is unavailable.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from climbapp.database import get_db_session
from climbapp.schemas.climbing import (
    ClimbingRouteResponse,
    CreateClimbingRouteRequest,
    UpdateClimbingRouteRequest,
)
from climbapp.schemas.common import ErrorResponse
from climbapp.services.route_service import route_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/sites/{site_id}/routes", tags=["Climbing Routes"])

NOT_FOUND = {404: {"description": "Site or route not found", "model": ErrorResponse}}


@router.get(
    "",
    response_model=List[ClimbingRouteResponse],
    responses=NOT_FOUND,
    summary="List the routes of a climbing site",
)
async def list_climbing_routes(
    site_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> List[ClimbingRouteResponse]:
    routes = await route_service.list_routes(db, site_id)
    return [ClimbingRouteResponse.model_validate(route) for route in routes]


@router.get(
    "/{route_id}",
    name="get_climbing_route",
    response_model=ClimbingRouteResponse,
    responses=NOT_FOUND,
    summary="Get a climbing route",
)
async def get_climbing_route(
    site_id: str,
    route_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> ClimbingRouteResponse:
    route = await route_service.get_route(db, site_id, route_id)
    return ClimbingRouteResponse.model_validate(route)


@router.post(
    "",
    status_code=201,
    response_model=ClimbingRouteResponse,
    responses={
        400: {"description": "Invalid request body or image", "model": ErrorResponse},
        503: {"description": "Image recognition unavailable", "model": ErrorResponse},
        **NOT_FOUND,
    },
    summary="Add a route to a climbing site",
)
async def create_climbing_route(
    site_id: str,
    body: CreateClimbingRouteRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
) -> ClimbingRouteResponse:
    """
    Create a route; the Location header points at GET .../routes/{route_id}.

    With `image`, the photo becomes a recognition target labelled with the
    new route id, and the response carries its `target_id`.
    """
    route = await route_service.create_route(db, site_id, body)
    response.headers["Location"] = str(
        request.url_for("get_climbing_route", site_id=site_id, route_id=route.id)
    )
    return ClimbingRouteResponse.model_validate(route)


@router.put(
    "/{route_id}",
    status_code=204,
    response_class=Response,
    responses={
        400: {"description": "Invalid request body", "model": ErrorResponse},
        **NOT_FOUND,
    },
    summary="Replace a climbing route's fields",
)
async def update_climbing_route(
    site_id: str,
    route_id: str,
    body: UpdateClimbingRouteRequest,
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await route_service.update_route(db, site_id, route_id, body)
    return Response(status_code=204)


@router.delete(
    "/{route_id}",
    status_code=204,
    response_class=Response,
    summary="Delete a climbing route",
)
async def delete_climbing_route(
    site_id: str,
    route_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await route_service.delete_route(db, site_id, route_id)
    return Response(status_code=204)
