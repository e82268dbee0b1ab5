"""
ClimbApp Backend — Climbing Site / Route Schemas
================================================

What:  Request and response models for the sites and routes endpoints.
How:   Response models read straight from the ORM objects (from_attributes).
       Update requests replace every mapped field, like the original
       PUT semantics.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from climbapp.schemas.common import ImageData


class NamedRequest(BaseModel):
    """Shared fields of every create/update body: a required name."""
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=4000)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Rejects names made only of whitespace."""
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


# ══════════════════════════════════════════════════════════════════════════
# Routes
# ══════════════════════════════════════════════════════════════════════════


class ClimbingRouteResponse(BaseModel):
    """Full representation of a climbing route."""
    id: str = Field(description="Route identifier")
    name: str
    description: Optional[str] = None
    difficulty: Optional[str] = None
    target_id: Optional[str] = Field(
        default=None,
        description="Image recognition target registered for this route",
    )
    created_at: datetime

    model_config = {"from_attributes": True}


class CreateClimbingRouteRequest(NamedRequest):
    """
    Body of POST /api/v1/sites/{site_id}/routes.

    When `image` is present, the photo is registered as a recognition
    target labelled with the new route id.
    """
    difficulty: Optional[str] = Field(default=None, max_length=20)
    image: Optional[ImageData] = None


class UpdateClimbingRouteRequest(NamedRequest):
    """Body of PUT /api/v1/sites/{site_id}/routes/{route_id}."""
    difficulty: Optional[str] = Field(default=None, max_length=20)


# ══════════════════════════════════════════════════════════════════════════
# Sites
# ══════════════════════════════════════════════════════════════════════════


class ClimbingSiteResponse(BaseModel):
    """A climbing site with all of its routes."""
    id: str = Field(description="Site identifier")
    name: str
    description: Optional[str] = None
    created_at: datetime
    routes: List[ClimbingRouteResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class ClimbingSiteListItem(BaseModel):
    """Compact site representation for list views."""
    id: str
    name: str
    description: Optional[str] = None
    route_count: int = Field(description="Number of routes at the site")
    created_at: datetime


class ClimbingSiteListResponse(BaseModel):
    """Paginated response wrapper for GET /api/v1/sites."""
    sites: List[ClimbingSiteListItem]
    total_count: int = Field(description="Total number of sites")
    has_more: bool = Field(description="Whether more pages are available")


class CreateClimbingSiteRequest(NamedRequest):
    """Body of POST /api/v1/sites."""


class UpdateClimbingSiteRequest(NamedRequest):
    """Body of PUT /api/v1/sites/{site_id}."""
