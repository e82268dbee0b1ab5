"""
ClimbApp Backend — Query Route Handler
======================================

What:  POST /api/v1/query — which climbing route is on this photo?
How:   Delegates to QueryService. "No match" is a normal 200 answer with
       result=no_match; only invalid images and service failures are errors.
Who:   Called by the mobile app after the user takes a picture.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from climbapp.database import get_db_session
from climbapp.schemas.common import ErrorResponse
from climbapp.schemas.query import QueryRequest, QueryResponse
from climbapp.services.query_service import query_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Query"])


@router.post(
    "/query",
    response_model=QueryResponse,
    responses={
        400: {"description": "Invalid image", "model": ErrorResponse},
        503: {"description": "Image recognition unavailable", "model": ErrorResponse},
    },
    summary="Identify the climbing route on a photo",
    description=(
        "Searches the registered route photos for the one most similar to the "
        "uploaded image. Returns the route and its site when the best match "
        "scores above the configured threshold, otherwise result=no_match."
    ),
)
async def query(
    body: QueryRequest,
    db: AsyncSession = Depends(get_db_session),
) -> QueryResponse:
    return await query_service.query(db, body)
