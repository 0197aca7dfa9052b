from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from ...api import deps
from ...core.auth import AuthContext
from ...core.errors import SchedulingError
from ...db.session import get_db
from ...db import schemas
from ...services import block_service

router = APIRouter(prefix="/blocks", tags=["blocks"])


@router.get("", response_model=list[schemas.Block])
def list_blocks(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(deps.require_roles("teacher")),
):
    return block_service.list_blocks(db, ctx)


@router.post("", response_model=schemas.Block, status_code=status.HTTP_201_CREATED)
def create_block(
    payload: schemas.BlockCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(deps.require_roles("teacher")),
):
    try:
        return block_service.create_block(
            db,
            ctx,
            starts_at=payload.starts_at,
            ends_at=payload.ends_at,
            title=payload.title,
            reason=payload.reason,
            is_recurring=payload.is_recurring,
            recurrence_rule=payload.recurrence_rule,
        )
    except SchedulingError as exc:
        raise deps.as_http_error(exc) from exc


@router.delete("/{block_id}")
def delete_block(
    block_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(deps.require_roles("teacher")),
):
    try:
        block_service.delete_block(db, ctx, block_id)
    except SchedulingError as exc:
        raise deps.as_http_error(exc) from exc
    return {"success": True}
