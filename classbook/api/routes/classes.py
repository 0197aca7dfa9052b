from datetime import datetime
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from ...api import deps
from ...core.auth import AuthContext
from ...core.errors import SchedulingError
from ...db.session import get_db
from ...db import schemas
from ...services import class_service, conflict_service

router = APIRouter(prefix="/classes", tags=["classes"])


@router.get("", response_model=list[schemas.ClassSession])
def list_classes(
    from_dt: datetime | None = None,
    to_dt: datetime | None = None,
    include_cancelled: bool = True,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(deps.require_roles("teacher")),
):
    return class_service.list_classes(
        db, ctx, from_dt=from_dt, to_dt=to_dt, include_cancelled=include_cancelled
    )


@router.post("", response_model=schemas.ClassSession, status_code=status.HTTP_201_CREATED)
def create_class(
    payload: schemas.ClassCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(deps.require_roles("teacher")),
):
    try:
        return class_service.create_class(
            db,
            ctx,
            class_type_id=payload.class_type_id,
            starts_at=payload.starts_at,
            ends_at=payload.ends_at,
            max_students=payload.max_students,
            event_type=payload.event_type,
            notes=payload.notes,
        )
    except SchedulingError as exc:
        raise deps.as_http_error(exc) from exc


@router.post("/conflicts", response_model=schemas.ConflictReport)
def check_conflicts(
    payload: schemas.ConflictCheck,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(deps.require_roles("teacher")),
):
    try:
        conflicts = conflict_service.check_conflicts(
            db,
            ctx,
            starts_at=payload.starts_at,
            ends_at=payload.ends_at,
            exclude_class_id=payload.exclude_class_id,
            exclude_block_id=payload.exclude_block_id,
            event_type=payload.event_type,
        )
    except SchedulingError as exc:
        raise deps.as_http_error(exc) from exc
    return schemas.ConflictReport(
        has_conflicts=bool(conflicts),
        conflicts=[schemas.Conflict(**conflict.as_dict()) for conflict in conflicts],
    )


@router.post("/{class_id}/cancel", response_model=schemas.ClassSession)
def cancel_class(
    class_id: int,
    payload: schemas.ClassCancel,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(deps.require_roles("teacher")),
):
    try:
        return class_service.cancel_class(db, ctx, class_id, reason=payload.reason)
    except SchedulingError as exc:
        raise deps.as_http_error(exc) from exc
