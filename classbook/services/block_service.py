from __future__ import annotations

from datetime import datetime, timedelta
import logging

from sqlalchemy.orm import Session

from ..config import get_settings
from ..core import recurrence, timerange
from ..core.auth import AuthContext, tenant_scope
from ..core.errors import ConflictError, NotFoundError, ValidationError
from ..db import models
from ..db.session import atomic
from . import conflict_service, dispatch_service

logger = logging.getLogger(__name__)


def list_blocks(db: Session, ctx: AuthContext) -> list[models.Block]:
    tenant_id = tenant_scope(ctx)
    return (
        db.query(models.Block)
        .filter(models.Block.tenant_id == tenant_id)
        .order_by(models.Block.starts_at, models.Block.id)
        .all()
    )


def create_block(
    db: Session,
    ctx: AuthContext,
    *,
    starts_at: str | datetime,
    ends_at: str | datetime,
    title: str | None = None,
    reason: str | None = None,
    is_recurring: bool = False,
    recurrence_rule: str | None = None,
) -> models.Block:
    """Block time off, unless that would strand students with active bookings."""

    tenant_id = tenant_scope(ctx)
    tenant = db.get(models.Teacher, tenant_id)
    zone = conflict_service.tenant_zone(tenant)
    start = timerange.parse_instant(starts_at, zone, "startsAt")
    end = timerange.parse_instant(ends_at, zone, "endsAt")
    timerange.require_ordered(start, end)

    rule = (recurrence_rule or "").strip() or None
    if is_recurring and not rule:
        raise ValidationError("recurrenceRule is required for recurring blocks")
    if rule and not is_recurring:
        raise ValidationError("recurrenceRule requires isRecurring")
    if rule:
        recurrence.parse_rule(rule, start, zone)
        horizon = start + timedelta(days=get_settings().block_recurrence_horizon_days)
        intervals = recurrence.occurrences(start, end, rule, start, horizon, zone)
    else:
        intervals = [(start, end)]

    blocking = conflict_service.find_blocking_bookings(db, tenant_id, intervals)
    if blocking:
        logger.info(
            "Block rejected, active bookings in range",
            extra={"tenant_id": tenant_id, "bookings": len(blocking)},
        )
        raise ConflictError(
            "Cannot block time with active bookings; cancel them first",
            blocking_bookings=blocking,
        )

    block = models.Block(
        tenant_id=tenant_id,
        starts_at=start,
        ends_at=end,
        title=title or None,
        reason=reason or None,
        is_recurring=bool(rule),
        recurrence_rule=rule,
    )
    with atomic(db):
        db.add(block)
    db.refresh(block)
    dispatch_service.publish(
        db,
        tenant_id=tenant_id,
        action="block_created",
        entity_type="block",
        entity_id=block.id,
        actor=ctx,
        new_values={
            "starts_at": start,
            "ends_at": end,
            "title": block.title,
            "recurrence_rule": rule,
        },
    )
    return block


def delete_block(db: Session, ctx: AuthContext, block_id: int) -> None:
    tenant_id = tenant_scope(ctx)
    block = (
        db.query(models.Block)
        .filter(models.Block.id == block_id)
        .filter(models.Block.tenant_id == tenant_id)
        .first()
    )
    if block is None:
        raise NotFoundError("Block not found")
    snapshot = {"starts_at": block.starts_at, "ends_at": block.ends_at, "title": block.title}
    with atomic(db):
        db.delete(block)
    dispatch_service.publish(
        db,
        tenant_id=tenant_id,
        action="block_deleted",
        entity_type="block",
        entity_id=block_id,
        actor=ctx,
        old_values=snapshot,
    )


__all__ = ["list_blocks", "create_block", "delete_block"]
