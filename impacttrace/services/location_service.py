"""Location service: create and list the named places claims and evidence refer to."""

from __future__ import annotations

import uuid
from collections.abc import Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from impacttrace.models import Location
from impacttrace.schemas.claim import LocationCreate, LocationRead


def add_location(db: Session, payload: LocationCreate, user_id: uuid.UUID) -> LocationRead:
    """Create a location at the end of its initiative's display order."""
    max_order = (
        db.query(func.max(Location.display_order))
        .filter(Location.initiative_id == payload.initiative_id)
        .scalar()
    )
    row = Location(
        **payload.model_dump(),
        user_id=user_id,
        display_order=0 if max_order is None else max_order + 1,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return LocationRead.model_validate(row)


def list_locations(db: Session, initiative_id: uuid.UUID) -> list[LocationRead]:
    rows = (
        db.query(Location)
        .filter(Location.initiative_id == initiative_id)
        .order_by(Location.display_order.asc(), Location.created_at.desc())
        .all()
    )
    return [LocationRead.model_validate(r) for r in rows]


def location_names(db: Session, location_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, str]:
    """Map location id to name for the given ids; unknown ids are absent."""
    ids = list(set(location_ids))
    if not ids:
        return {}
    rows = db.query(Location.id, Location.name).filter(Location.id.in_(ids)).all()
    return {row.id: row.name for row in rows}
