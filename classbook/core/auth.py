"""Actor context passed into every core operation.

Role bindings are always read from ``user_roles``; the token only tells us
who the caller is, never which tenant they act for.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from ..db import models
from ..db.models.user_role import Role
from .errors import AuthorizationError


@dataclass(frozen=True, slots=True)
class AuthContext:
    profile_id: int
    role: Role
    tenant_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin

    @property
    def actor_label(self) -> str:
        return f"{self.role.value}:{self.profile_id}"


def resolve_auth_context(
    db: Session, profile_id: int, allowed_roles: tuple[Role, ...]
) -> AuthContext:
    """Pick the first binding of ``profile_id`` matching ``allowed_roles`` (in order)."""

    bindings = (
        db.query(models.UserRole)
        .filter(models.UserRole.profile_id == profile_id)
        .order_by(models.UserRole.id)
        .all()
    )
    for role in allowed_roles:
        for binding in bindings:
            if binding.role != role:
                continue
            if role == Role.teacher:
                tenant = db.get(models.Teacher, binding.tenant_id)
                if tenant is None or not tenant.is_active:
                    continue
            tenant_id = binding.tenant_id if role == Role.teacher else None
            return AuthContext(profile_id=profile_id, role=role, tenant_id=tenant_id)
    required = ", ".join(role.value for role in allowed_roles)
    raise AuthorizationError(f"{required.capitalize()} access required")


def tenant_scope(ctx: AuthContext) -> int:
    """Tenant a teacher-side operation is confined to."""

    if ctx.role != Role.teacher or ctx.tenant_id is None:
        raise AuthorizationError("Teacher access required")
    return ctx.tenant_id


def resolve_student(db: Session, ctx: AuthContext, tenant_id: int) -> models.Student:
    """Student record binding the caller's profile to ``tenant_id``."""

    if ctx.role != Role.student:
        raise AuthorizationError("Student access required")
    student = (
        db.query(models.Student)
        .filter(models.Student.profile_id == ctx.profile_id)
        .filter(models.Student.tenant_id == tenant_id)
        .filter(models.Student.is_active.is_(True))
        .first()
    )
    if student is None:
        raise AuthorizationError("You are not registered as a student with this teacher")
    return student


__all__ = [
    "AuthContext",
    "resolve_auth_context",
    "tenant_scope",
    "resolve_student",
]
