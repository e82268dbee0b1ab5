"""
ClimbApp Backend — Image Recognition Target Handlers
====================================================

What:  Management surface of the recognition catalog (Vision product sets,
       products and reference images).
How:   Thin wrappers around ImageRecognitionService; images arrive inline
       as base64 and are validated by ImageService first.
Who:   Used by catalog tooling and operators. The mobile app only needs
       /api/v1/query.

Endpoints:
    POST   /api/v1/target-sets                                 201
    GET    /api/v1/target-sets/{target_set_id}/targets         200
    DELETE /api/v1/target-sets/{target_set_id}/targets/{id}    204
    GET    /api/v1/targets/{target_id}                         200 | 404
    POST   /api/v1/targets                                     201
    POST   /api/v1/targets/search                              200
"""

import logging
from typing import List

from fastapi import APIRouter, Query, Response

from climbapp.schemas.common import ErrorResponse
from climbapp.schemas.target import (
    CreateTargetRequest,
    CreateTargetSetRequest,
    Target,
    TargetSearchRequest,
    TargetSearchResults,
)
from climbapp.services.image_recognition_service import image_recognition_service
from climbapp.services.image_service import image_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Targets"])

SERVICE_ERRORS = {
    503: {"description": "Image recognition unavailable", "model": ErrorResponse},
}


@router.post(
    "/target-sets",
    status_code=201,
    response_class=Response,
    responses={
        400: {"description": "Invalid request body", "model": ErrorResponse},
        **SERVICE_ERRORS,
    },
    summary="Create a target set",
)
async def create_target_set(body: CreateTargetSetRequest) -> Response:
    await image_recognition_service.create_target_set(body.id, body.display_name)
    return Response(status_code=201)


@router.get(
    "/target-sets/{target_set_id}/targets",
    response_model=List[Target],
    responses={
        404: {"description": "Target set not found", "model": ErrorResponse},
        **SERVICE_ERRORS,
    },
    summary="List the targets of a target set",
)
async def get_targets(
    target_set_id: str,
    page: int = Query(default=1, ge=1, description="1-based page number"),
    page_size: int = Query(default=100, ge=1, le=500, description="Targets per page"),
) -> List[Target]:
    return await image_recognition_service.get_targets(target_set_id, page, page_size)


@router.delete(
    "/target-sets/{target_set_id}/targets/{target_id}",
    status_code=204,
    response_class=Response,
    responses={
        404: {"description": "Target not found", "model": ErrorResponse},
        **SERVICE_ERRORS,
    },
    summary="Delete a target with its reference images",
)
async def delete_target(target_set_id: str, target_id: str) -> Response:
    await image_recognition_service.delete_target(target_set_id, target_id)
    return Response(status_code=204)


@router.get(
    "/targets/{target_id}",
    response_model=Target,
    responses={
        404: {"description": "Target not found", "model": ErrorResponse},
        **SERVICE_ERRORS,
    },
    summary="Get a target with its reference images",
)
async def get_target(target_id: str) -> Target:
    return await image_recognition_service.get_target(target_id)


@router.post(
    "/targets",
    status_code=201,
    response_model=Target,
    responses={
        400: {"description": "Invalid request body or image", "model": ErrorResponse},
        **SERVICE_ERRORS,
    },
    summary="Register a new target from a photo",
)
async def create_target(body: CreateTargetRequest) -> Target:
    content, mime_type = image_service.decode_and_validate(body.image.base64)
    return await image_recognition_service.create_target(
        display_name=body.display_name,
        description=body.description,
        labels=body.labels,
        image=content,
        content_type=mime_type,
    )


@router.post(
    "/targets/search",
    response_model=TargetSearchResults,
    responses={
        400: {"description": "Invalid image", "model": ErrorResponse},
        **SERVICE_ERRORS,
    },
    summary="Search for targets similar to a photo",
)
async def search_targets(body: TargetSearchRequest) -> TargetSearchResults:
    """Raw product search results, unfiltered and unsorted."""
    content, _ = image_service.decode_and_validate(body.image.base64)
    return await image_recognition_service.query_similar_targets(content)
