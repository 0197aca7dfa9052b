from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from ...api import deps
from ...core.auth import AuthContext, tenant_scope
from ...core.errors import SchedulingError
from ...db.session import get_db
from ...db import models, schemas
from ...services import availability_service, conflict_service

router = APIRouter(tags=["availability"])


def _feed(
    db: Session,
    tenant_id: int,
    from_date: str,
    to_date: str,
    timezone: str | None,
    *,
    public_only: bool,
) -> schemas.AvailabilityFeed:
    try:
        slots = availability_service.get_availability_slots(
            db, tenant_id, from_date, to_date, timezone, public_only=public_only
        )
    except SchedulingError as exc:
        raise deps.as_http_error(exc) from exc
    zone_name = timezone or str(conflict_service.tenant_zone(db.get(models.Teacher, tenant_id)))
    return schemas.AvailabilityFeed(
        slots=[schemas.AvailabilitySlot.model_validate(slot) for slot in slots],
        timezone=zone_name,
    )


@router.get("/availability", response_model=schemas.AvailabilityFeed)
def own_availability(
    from_date: str = Query(alias="from"),
    to_date: str = Query(alias="to"),
    timezone: str | None = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(deps.require_roles("teacher")),
):
    return _feed(db, tenant_scope(ctx), from_date, to_date, timezone, public_only=False)


@router.get("/teachers/{tenant_id}/availability", response_model=schemas.AvailabilityFeed)
def public_availability(
    tenant_id: int,
    from_date: str = Query(alias="from"),
    to_date: str = Query(alias="to"),
    timezone: str | None = None,
    db: Session = Depends(get_db),
):
    return _feed(db, tenant_id, from_date, to_date, timezone, public_only=True)
