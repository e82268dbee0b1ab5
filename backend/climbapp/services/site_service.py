"""
ClimbApp Backend — Climbing Site Service
========================================

What:  CRUD for climbing sites, the aggregate root of the catalog.
How:   Loads a site together with its routes, mutates it in the session and
       lets get_db_session commit. Database failures are wrapped in
       DatabaseError; missing sites raise NotFoundError.
Who:   Called by the /api/v1/sites handlers and by RouteService.

Site ids are lowercase UUID strings; lookups lower-case the requested id, so
ids are matched case-insensitively like the routes inside a site.
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from climbapp.config import settings
from climbapp.exceptions import (
    CircuitBreakerOpenError,
    DatabaseError,
    ImageRecognitionError,
    NotFoundError,
)
from climbapp.models.climbing import ClimbingSite, new_id, utcnow
from climbapp.schemas.climbing import (
    ClimbingSiteListItem,
    ClimbingSiteListResponse,
    CreateClimbingSiteRequest,
    UpdateClimbingSiteRequest,
)
from climbapp.services.image_recognition_service import image_recognition_service

logger = logging.getLogger(__name__)


class SiteService:
    """
    Business logic for climbing sites.

    Responsibilities:
        - find_site() / get_site(): aggregate lookup (routes included)
        - list_sites(): offset pagination ordered by name
        - create_site() / update_site() / delete_site()
        - release_targets(): removes recognition targets of deleted routes
    """

    async def find_site(self, db: AsyncSession, site_id: str) -> Optional[ClimbingSite]:
        """Load a site with its routes, or None if it does not exist."""
        try:
            return await db.get(ClimbingSite, site_id.lower())
        except SQLAlchemyError as e:
            logger.error("Database error fetching site %s: %s", site_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the climbing site. Please try again.",
                context={"site_id": site_id},
            )

    async def get_site(self, db: AsyncSession, site_id: str) -> ClimbingSite:
        """
        Load a site with its routes.

        Raises:
            NotFoundError: No site with this id (→ 404)
        """
        site = await self.find_site(db, site_id)
        if site is None:
            raise NotFoundError(resource="climbing site", resource_id=site_id)
        return site

    async def list_sites(
        self,
        db: AsyncSession,
        offset: int = 0,
        limit: int = 50,
    ) -> ClimbingSiteListResponse:
        """
        One page of sites ordered by name.

        Query plan:
            SELECT * FROM climbing_sites ORDER BY name OFFSET :offset LIMIT :limit
            → idx_climbing_sites_name; routes fetched by one selectin query
        """
        try:
            result = await db.execute(
                select(ClimbingSite)
                .order_by(ClimbingSite.name, ClimbingSite.id)
                .offset(offset)
                .limit(limit)
            )
            sites: List[ClimbingSite] = list(result.scalars().all())

            count_result = await db.execute(select(func.count(ClimbingSite.id)))
            total_count = count_result.scalar() or 0
        except SQLAlchemyError as e:
            logger.error("Database error listing sites: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve climbing sites. Please try again.",
                context={"error_type": type(e).__name__},
            )

        return ClimbingSiteListResponse(
            sites=[
                ClimbingSiteListItem(
                    id=site.id,
                    name=site.name,
                    description=site.description,
                    route_count=len(site.routes),
                    created_at=site.created_at,
                )
                for site in sites
            ],
            total_count=total_count,
            has_more=offset + len(sites) < total_count,
        )

    async def create_site(
        self,
        db: AsyncSession,
        request: CreateClimbingSiteRequest,
    ) -> ClimbingSite:
        site = ClimbingSite(
            id=new_id(),
            name=request.name,
            description=request.description,
            created_at=utcnow(),
            routes=[],
        )
        try:
            db.add(site)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error creating site: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not create the climbing site. Please try again.",
                context={"error_type": type(e).__name__},
            )

        logger.info("Climbing site created: %s (%s)", site.id, site.name)
        return site

    async def update_site(
        self,
        db: AsyncSession,
        site_id: str,
        request: UpdateClimbingSiteRequest,
    ) -> None:
        """Replace name and description. Raises NotFoundError if the site is missing."""
        site = await self.get_site(db, site_id)
        site.name = request.name
        site.description = request.description
        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error updating site %s: %s", site_id, str(e))
            raise DatabaseError(
                message="Could not update the climbing site. Please try again.",
                context={"site_id": site_id},
            )

    async def delete_site(self, db: AsyncSession, site_id: str) -> None:
        """
        Delete a site, its routes and their recognition targets.

        Idempotent: deleting a missing site is a no-op.
        """
        site = await self.find_site(db, site_id)
        if site is None:
            logger.info("Site %s already absent, nothing to delete", site_id)
            return

        target_ids = [route.target_id for route in site.routes if route.target_id]
        try:
            await db.delete(site)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error deleting site %s: %s", site_id, str(e))
            raise DatabaseError(
                message="Could not delete the climbing site. Please try again.",
                context={"site_id": site_id},
            )

        await self.release_targets(target_ids)
        logger.info("Climbing site deleted: %s (%d routes)", site_id, len(site.routes))

    async def release_targets(self, target_ids: Iterable[str]) -> None:
        """
        Delete recognition targets, best effort.

        The database stays the source of truth: a target that is already
        gone or cannot be deleted right now is logged and skipped, and the
        remaining targets are still released.
        """
        for target_id in target_ids:
            try:
                await image_recognition_service.delete_target(
                    settings.product_set_id, target_id
                )
            except NotFoundError:
                logger.warning("Recognition target %s already deleted", target_id)
            except (ImageRecognitionError, CircuitBreakerOpenError) as e:
                logger.error(
                    "Could not release recognition target %s: %s", target_id, e.message
                )


# ── Singleton Instance ────────────────────────────────────────────────────
site_service = SiteService()
