"""
ClimbApp Backend — Climbing Route Service
=========================================

What:  Routes inside a climbing site: list, get, create, update, delete.
How:   Every operation loads the owning site (routes included), works on its
       route list and lets the session persist the change. A route created
       with a photo is first registered as a recognition target whose
       `climbing_route_id` label points back at the route.
Who:   Called by the /api/v1/sites/{site_id}/routes handlers.

Route ids are matched case-insensitively within their site.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from climbapp.config import settings
from climbapp.exceptions import DatabaseError, NotFoundError
from climbapp.models.climbing import ClimbingRoute, ClimbingSite, new_id, utcnow
from climbapp.schemas.climbing import (
    CreateClimbingRouteRequest,
    UpdateClimbingRouteRequest,
)
from climbapp.services.image_recognition_service import image_recognition_service
from climbapp.services.image_service import image_service
from climbapp.services.site_service import site_service

logger = logging.getLogger(__name__)

# Target label holding the id of the route a photo belongs to
CLIMBING_ROUTE_ID_LABEL = "climbing_route_id"


def find_route(site: ClimbingSite, route_id: str) -> Optional[ClimbingRoute]:
    """Route of `site` whose id equals `route_id`, ignoring case."""
    wanted = route_id.lower()
    return next((route for route in site.routes if route.id.lower() == wanted), None)


class RouteService:
    """Business logic for the routes of a climbing site."""

    async def list_routes(self, db: AsyncSession, site_id: str) -> List[ClimbingRoute]:
        site = await site_service.get_site(db, site_id)
        return list(site.routes)

    async def get_route(self, db: AsyncSession, site_id: str, route_id: str) -> ClimbingRoute:
        """
        Raises:
            NotFoundError: Site or route missing (→ 404)
        """
        site = await site_service.get_site(db, site_id)
        route = find_route(site, route_id)
        if route is None:
            raise NotFoundError(resource="climbing route", resource_id=route_id)
        return route

    async def create_route(
        self,
        db: AsyncSession,
        site_id: str,
        request: CreateClimbingRouteRequest,
    ) -> ClimbingRoute:
        """
        Add a new route to a site.

        Workflow Steps:
            1. Load the site (404 if missing)
            2. Decode and validate the photo, if one was sent
            3. Register the photo as a target labelled with the new route id
            4. Append the route to the site and flush
            5. With a target registered, commit right away

        Error Recovery:
            Step 4 or 5 fails → the target created in step 3 is deleted again,
            so no product is left labelled with a route that was never saved

        Raises:
            NotFoundError, ValidationError, ImageRecognitionError,
            CircuitBreakerOpenError, DatabaseError
        """
        site = await site_service.get_site(db, site_id)

        route = ClimbingRoute(
            id=new_id(),
            name=request.name,
            description=request.description,
            difficulty=request.difficulty,
            created_at=utcnow(),
        )

        if request.image is not None:
            content, mime_type = image_service.decode_and_validate(request.image.base64)
            target = await image_recognition_service.create_target(
                display_name=request.name,
                description=request.description,
                labels={CLIMBING_ROUTE_ID_LABEL: route.id},
                image=content,
                content_type=mime_type,
            )
            route.target_id = target.id
            logger.info("Route %s registered as target %s", route.id, target.id)

        try:
            site.routes.append(route)
            await db.flush()
            if route.target_id:
                await db.commit()
        except SQLAlchemyError as e:
            logger.error("Database error creating route in site %s: %s", site_id, str(e))
            if route.target_id:
                await site_service.release_targets([route.target_id])
            raise DatabaseError(
                message="Could not create the climbing route. Please try again.",
                context={"site_id": site_id},
            )

        logger.info("Climbing route created: %s in site %s", route.id, site.id)
        return route

    async def update_route(
        self,
        db: AsyncSession,
        site_id: str,
        route_id: str,
        request: UpdateClimbingRouteRequest,
    ) -> None:
        route = await self.get_route(db, site_id, route_id)
        route.name = request.name
        route.description = request.description
        route.difficulty = request.difficulty
        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error updating route %s: %s", route_id, str(e))
            raise DatabaseError(
                message="Could not update the climbing route. Please try again.",
                context={"site_id": site_id, "route_id": route_id},
            )

    async def delete_route(self, db: AsyncSession, site_id: str, route_id: str) -> None:
        """
        Remove a route from its site, then delete its recognition target.

        A missing site or route is not an error, and neither is a target
        that cannot be released (see SiteService.release_targets).
        """
        site = await site_service.find_site(db, site_id)
        if site is None:
            return
        route = find_route(site, route_id)
        if route is None:
            return

        try:
            site.routes.remove(route)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error deleting route %s: %s", route_id, str(e))
            raise DatabaseError(
                message="Could not delete the climbing route. Please try again.",
                context={"site_id": site_id, "route_id": route_id},
            )

        if route.target_id:
            await site_service.release_targets([route.target_id])
        logger.info("Climbing route deleted: %s from site %s", route.id, site.id)


# ── Singleton Instance ────────────────────────────────────────────────────
route_service = RouteService()
