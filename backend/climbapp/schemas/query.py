"""
ClimbApp Backend — Query Flow Schemas
=====================================

What:  Request/response models of POST /api/v1/query.

Example response (match):
    {
        "result": "match",
        "climbing_route": {
            "id": "4c1e...", "name": "Black Slab", "description": null,
            "difficulty": "6b",
            "site": {"id": "9a2f...", "name": "Fontainebleau", "description": null}
        }
    }

A no-match response has the same shape with every field null.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from climbapp.schemas.common import ImageData


class QueryRequest(BaseModel):
    """A photographed climbing target."""
    image: ImageData


class QueryResultType(str, Enum):
    MATCH = "match"
    NO_MATCH = "no_match"


class ClimbingSiteMatch(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None

    model_config = {"from_attributes": True}


class ClimbingRouteMatch(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    difficulty: Optional[str] = None
    site: ClimbingSiteMatch = Field(default_factory=ClimbingSiteMatch)

    model_config = {"from_attributes": True}


class QueryResponse(BaseModel):
    result: QueryResultType
    climbing_route: ClimbingRouteMatch = Field(default_factory=ClimbingRouteMatch)
