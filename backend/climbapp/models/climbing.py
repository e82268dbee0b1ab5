"""
ClimbApp Backend — Climbing Site / Route SQLAlchemy Models
==========================================================

What:  ORM models for the `climbing_sites` and `climbing_routes` tables.
How:   A site owns its routes (one-to-many, delete-orphan). Routes are loaded
       together with their site, so a site behaves like a single document:
       load it, change its route list, let the session save it.
Who:   Used by the site, route and query services and by Alembic.

Identifiers are string UUIDs generated by the services, so a new route's id
is known before the session is flushed.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import ForeignKey, Index, String, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from climbapp.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClimbingSite(Base):
    """
    A physical climbing location and the routes set up there.

    Query Patterns:
        - Load a site with its routes: primary key lookup + selectin load
        - Find the site holding a route: join on climbing_routes.id
        - List sites: ORDER BY name
    """

    __tablename__ = "climbing_sites"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=new_id,
        comment="Site identifier (UUID string)",
    )

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Display name of the climbing site",
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        default=None,
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        comment="When this site was created (UTC)",
    )

    # selectin: routes are fetched with the site (no lazy IO under asyncio)
    routes: Mapped[List["ClimbingRoute"]] = relationship(
        back_populates="site",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ClimbingRoute.created_at",
    )

    __table_args__ = (
        Index("idx_climbing_sites_name", "name"),
    )

    def __repr__(self) -> str:
        return f"<ClimbingSite(id={self.id}, name='{self.name}')>"


class ClimbingRoute(Base):
    """
    A single route at a climbing site.

    `target_id` links the route to the Product Search product registered for
    its photo; the product carries the reverse link as a label.
    """

    __tablename__ = "climbing_routes"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=new_id,
        comment="Route identifier (UUID string)",
    )

    site_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("climbing_sites.id", ondelete="CASCADE"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)

    # Free-form grade, e.g. "6a+", "V4", "5.11c"
    difficulty: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, default=None)

    target_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        default=None,
        comment="Image recognition target (product) registered for this route",
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    site: Mapped[ClimbingSite] = relationship(back_populates="routes")

    __table_args__ = (
        Index("idx_climbing_routes_site_id", "site_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ClimbingRoute(id={self.id}, site_id={self.site_id}, "
            f"name='{self.name}')>"
        )
