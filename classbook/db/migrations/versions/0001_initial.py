from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _enum(*values: str, name: str) -> postgresql.ENUM:
    enum = postgresql.ENUM(*values, name=name, create_type=False)
    enum.create(op.get_bind(), checkfirst=True)
    return enum


def upgrade() -> None:
    op.create_table(
        "teachers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=128), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255)),
        sa.Column("timezone", sa.String(length=64)),
        sa.Column("settings", sa.JSON()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_auth_id", sa.String(length=255), unique=True),
        sa.Column("email", sa.String(length=255)),
        sa.Column("full_name", sa.String(length=255)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    role = _enum("admin", "teacher", "student", name="role")
    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("profile_id", sa.Integer(), sa.ForeignKey("profiles.id", ondelete="CASCADE")),
        sa.Column("role", role, nullable=False),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("teachers.id", ondelete="CASCADE")),
        sa.UniqueConstraint("profile_id", "role", "tenant_id", name="uq_user_role_binding"),
    )

    op.create_table(
        "students",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("teachers.id", ondelete="CASCADE"), index=True),
        sa.Column("profile_id", sa.Integer(), sa.ForeignKey("profiles.id", ondelete="SET NULL")),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255)),
        sa.Column("phone", sa.String(length=32)),
        sa.Column("notes", sa.Text()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "class_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("teachers.id", ondelete="CASCADE"), index=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("duration_minutes", sa.Integer(), server_default="60"),
        sa.Column("max_students", sa.Integer(), server_default="1"),
        sa.Column("color", sa.String(length=16)),
        sa.Column("is_public", sa.Boolean(), server_default=sa.true()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.CheckConstraint("max_students > 0", name="ck_class_type_max_students_positive"),
        sa.CheckConstraint("duration_minutes > 0", name="ck_class_type_duration_positive"),
    )

    day_of_week = _enum(
        "monday",
        "tuesday",
        "wednesday",
        "thursday",
        "friday",
        "saturday",
        "sunday",
        name="dayofweek",
    )
    op.create_table(
        "schedules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("teachers.id", ondelete="CASCADE"), index=True),
        sa.Column("class_type_id", sa.Integer(), sa.ForeignKey("class_types.id", ondelete="CASCADE")),
        sa.Column("day_of_week", day_of_week, nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("max_students", sa.Integer()),
        sa.Column("valid_from", sa.Date()),
        sa.Column("valid_until", sa.Date()),
        sa.Column("is_public", sa.Boolean(), server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "blocks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("teachers.id", ondelete="CASCADE"), index=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), index=True),
        sa.Column("ends_at", sa.DateTime(timezone=True)),
        sa.Column("title", sa.String(length=255)),
        sa.Column("reason", sa.String(length=255)),
        sa.Column("is_recurring", sa.Boolean(), server_default=sa.false()),
        sa.Column("recurrence_rule", sa.String(length=512)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("starts_at < ends_at", name="ck_block_range"),
    )

    event_type = _enum("class", "private", "block", name="eventtype")
    op.create_table(
        "classes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("teachers.id", ondelete="CASCADE"), index=True),
        sa.Column("class_type_id", sa.Integer(), sa.ForeignKey("class_types.id", ondelete="CASCADE")),
        sa.Column("schedule_id", sa.Integer(), sa.ForeignKey("schedules.id", ondelete="SET NULL")),
        sa.Column("starts_at", sa.DateTime(timezone=True), index=True),
        sa.Column("ends_at", sa.DateTime(timezone=True)),
        sa.Column("max_students", sa.Integer(), nullable=False),
        sa.Column("event_type", event_type, server_default="class"),
        sa.Column("is_cancelled", sa.Boolean(), server_default=sa.false()),
        sa.Column("cancelled_reason", sa.String(length=255)),
        sa.Column("is_recurring", sa.Boolean(), server_default=sa.false()),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("schedule_id", "starts_at", name="uq_class_schedule_start"),
        sa.CheckConstraint("max_students > 0", name="ck_class_max_students_positive"),
        sa.CheckConstraint("starts_at < ends_at", name="ck_class_range"),
    )
    op.create_index("ix_classes_tenant_range", "classes", ["tenant_id", "starts_at", "ends_at"])

    booking_status = _enum(
        "pending",
        "confirmed",
        "cancelled",
        "completed",
        "no_show",
        name="bookingstatus",
    )
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("teachers.id", ondelete="CASCADE"), index=True),
        sa.Column("class_id", sa.Integer(), sa.ForeignKey("classes.id", ondelete="CASCADE"), index=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id", ondelete="CASCADE")),
        sa.Column("status", booking_status, server_default="pending"),
        sa.Column("attended", sa.Boolean()),
        sa.Column("notes", sa.Text()),
        sa.Column("booked_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_by", sa.String(length=64)),
        sa.Column("cancellation_reason", sa.String(length=255)),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "uq_booking_active_student_class",
        "bookings",
        ["student_id", "class_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'confirmed')"),
    )

    actor_type = _enum("student", "teacher", "admin", "system", name="actortype")
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), index=True),
        sa.Column("entity_type", sa.String(length=64)),
        sa.Column("entity_id", sa.Integer()),
        sa.Column("action", sa.String(length=255)),
        sa.Column("actor_type", actor_type),
        sa.Column("actor_id", sa.Integer()),
        sa.Column("old_values", sa.JSON()),
        sa.Column("new_values", sa.JSON()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    job_status = _enum("pending", "processing", "completed", "failed", "dead", name="jobstatus")
    op.create_table(
        "jobs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), index=True),
        sa.Column("type", sa.String(length=64)),
        sa.Column("payload", sa.JSON()),
        sa.Column("status", job_status, server_default="pending", index=True),
        sa.Column("priority", sa.Integer(), server_default="0"),
        sa.Column("attempts", sa.Integer(), server_default="0"),
        sa.Column("max_attempts", sa.Integer(), server_default="3"),
        sa.Column("error", sa.Text()),
        sa.Column("scheduled_at", sa.DateTime(timezone=True)),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_jobs_due", "jobs", ["status", "scheduled_at"])


def downgrade() -> None:
    op.drop_index("ix_jobs_due", table_name="jobs")
    op.drop_table("jobs")
    op.drop_table("audit_logs")
    op.drop_index("uq_booking_active_student_class", table_name="bookings")
    op.drop_table("bookings")
    op.drop_index("ix_classes_tenant_range", table_name="classes")
    op.drop_table("classes")
    op.drop_table("blocks")
    op.drop_table("schedules")
    op.drop_table("class_types")
    op.drop_table("students")
    op.drop_table("user_roles")
    op.drop_table("profiles")
    op.drop_table("teachers")
    bind = op.get_bind()
    for name in (
        "jobstatus",
        "actortype",
        "bookingstatus",
        "eventtype",
        "dayofweek",
        "role",
    ):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
