"""
ClimbApp Backend — Query Service (Photo → Climbing Route)
=========================================================

What:  Identifies the climbing route shown on a photo.
How:   Runs a similar-product search, keeps the best hit above the match
       threshold, follows its `climbing_route_id` label to the route and
       returns the route with its site.
Who:   Called by POST /api/v1/query.

Flow:
    ┌──────────┐    ┌─────────────┐    ┌──────────────┐    ┌──────────┐
    │  Decode  │───▶│  Product    │───▶│  Best score  │───▶│  Site /  │
    │  image   │    │  search     │    │  > threshold │    │  route   │
    └──────────┘    └─────────────┘    └──────────────┘    └──────────┘

Anything short of a stored route (no hit, low score, no label, stale label)
answers `no_match`; it is a normal 200 response.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from climbapp.config import settings
from climbapp.exceptions import DatabaseError
from climbapp.models.climbing import ClimbingRoute, ClimbingSite
from climbapp.schemas.query import (
    ClimbingRouteMatch,
    ClimbingSiteMatch,
    QueryRequest,
    QueryResponse,
    QueryResultType,
)
from climbapp.schemas.target import TargetSearchResultEntry, TargetSearchResults
from climbapp.services.image_recognition_service import image_recognition_service
from climbapp.services.image_service import image_service
from climbapp.services.route_service import CLIMBING_ROUTE_ID_LABEL

logger = logging.getLogger(__name__)


def best_match(
    results: TargetSearchResults,
    threshold: float,
) -> Optional[TargetSearchResultEntry]:
    """Highest scoring result strictly above `threshold`, or None."""
    ordered = sorted(results.results, key=lambda entry: entry.score, reverse=True)
    return next((entry for entry in ordered if entry.score > threshold), None)


class QueryService:
    """Matches photos against the registered route targets."""

    async def query(self, db: AsyncSession, request: QueryRequest) -> QueryResponse:
        """
        Identify the route on a photo.

        Raises:
            ValidationError: Image payload invalid (→ 400)
            ImageRecognitionError / CircuitBreakerOpenError (→ 503)
            DatabaseError (→ 500)
        """
        content, _ = image_service.decode_and_validate(request.image.base64)

        results = await image_recognition_service.query_similar_targets(content)
        match = best_match(results, settings.match_score_threshold)
        if match is None:
            return QueryResponse(result=QueryResultType.NO_MATCH)

        logger.info(
            "Found a matching target: %s (score=%.3f)",
            match.target.id,
            match.score,
        )

        route_id = match.target.labels.get(CLIMBING_ROUTE_ID_LABEL)
        if not route_id:
            logger.warning("Target %s has no %s label", match.target.id, CLIMBING_ROUTE_ID_LABEL)
            return QueryResponse(result=QueryResultType.NO_MATCH)

        site = await self._find_site_by_route(db, route_id)
        route = None
        if site is not None:
            route = next((r for r in site.routes if r.id == route_id), None)
        if route is None:
            logger.warning("Target %s points at unknown route %s", match.target.id, route_id)
            return QueryResponse(result=QueryResultType.NO_MATCH)

        return QueryResponse(
            result=QueryResultType.MATCH,
            climbing_route=ClimbingRouteMatch(
                id=route.id,
                name=route.name,
                description=route.description,
                difficulty=route.difficulty,
                site=ClimbingSiteMatch(
                    id=site.id,
                    name=site.name,
                    description=site.description,
                ),
            ),
        )

    async def _find_site_by_route(self, db: AsyncSession, route_id: str) -> Optional[ClimbingSite]:
        """
        Query plan:
            SELECT climbing_sites.* FROM climbing_sites
            JOIN climbing_routes ON climbing_sites.id = climbing_routes.site_id
            WHERE climbing_routes.id = :route_id
        """
        try:
            result = await db.execute(
                select(ClimbingSite)
                .join(ClimbingSite.routes)
                .where(ClimbingRoute.id == route_id)
            )
            return result.scalars().first()
        except SQLAlchemyError as e:
            logger.error("Database error looking up route %s: %s", route_id, str(e))
            raise DatabaseError(
                message="Could not look up the matched climbing route. Please try again.",
                context={"route_id": route_id},
            )


# ── Singleton Instance ────────────────────────────────────────────────────
query_service = QueryService()
