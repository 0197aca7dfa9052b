from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from ...api import deps
from ...core.auth import AuthContext
from ...core.errors import SchedulingError
from ...db.session import get_db
from ...db import schemas
from ...services import schedule_service

router = APIRouter(prefix="/schedules", tags=["schedules"])


@router.get("", response_model=list[schemas.Schedule])
def list_schedules(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(deps.require_roles("teacher")),
):
    return schedule_service.list_schedules(db, ctx)


@router.post("", response_model=schemas.Schedule, status_code=status.HTTP_201_CREATED)
def create_schedule(
    payload: schemas.ScheduleCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(deps.require_roles("teacher")),
):
    try:
        return schedule_service.create_schedule(
            db,
            ctx,
            class_type_id=payload.class_type_id,
            day_of_week=payload.day_of_week,
            start_time=payload.start_time,
            end_time=payload.end_time,
            max_students=payload.max_students,
            is_public=payload.is_public,
            valid_from=payload.valid_from,
            valid_until=payload.valid_until,
        )
    except SchedulingError as exc:
        raise deps.as_http_error(exc) from exc


@router.delete("/{schedule_id}")
def delete_schedule(
    schedule_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(deps.require_roles("teacher")),
):
    try:
        schedule_service.delete_schedule(db, ctx, schedule_id)
    except SchedulingError as exc:
        raise deps.as_http_error(exc) from exc
    return {"success": True}


@router.post("/{schedule_id}/materialize", response_model=schemas.MaterializeResult)
def materialize_schedule(
    schedule_id: int,
    payload: schemas.MaterializeRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(deps.require_roles("teacher")),
):
    try:
        created = schedule_service.materialize_schedule(
            db, ctx, schedule_id, payload.from_date, payload.to_date
        )
    except SchedulingError as exc:
        raise deps.as_http_error(exc) from exc
    return schemas.MaterializeResult(schedule_id=schedule_id, created=created)
