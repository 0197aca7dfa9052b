from datetime import datetime
from pydantic import BaseModel, Field


class ClassCreate(BaseModel):
    class_type_id: int = Field(alias="classTypeId")
    starts_at: str = Field(alias="startsAt")
    ends_at: str = Field(alias="endsAt")
    max_students: int | None = Field(default=None, alias="maxStudents")
    event_type: str | None = Field(default=None, alias="eventType")
    notes: str | None = None

    class Config:
        populate_by_name = True


class ClassCancel(BaseModel):
    reason: str | None = None


class ConflictCheck(BaseModel):
    starts_at: str = Field(alias="startsAt")
    ends_at: str = Field(alias="endsAt")
    exclude_class_id: int | None = Field(default=None, alias="excludeClassId")
    exclude_block_id: int | None = Field(default=None, alias="excludeBlockId")
    event_type: str | None = Field(default=None, alias="eventType")

    class Config:
        populate_by_name = True


class Conflict(BaseModel):
    conflict_type: str
    conflict_id: int
    conflict_starts_at: datetime
    conflict_ends_at: datetime
    conflict_details: dict


class ConflictReport(BaseModel):
    has_conflicts: bool
    conflicts: list[Conflict]


class ClassSession(BaseModel):
    id: int
    tenant_id: int
    class_type_id: int
    schedule_id: int | None = None
    starts_at: datetime
    ends_at: datetime
    max_students: int
    event_type: str
    is_cancelled: bool
    cancelled_reason: str | None = None
    is_recurring: bool
    notes: str | None = None
    booking_count: int | None = None
    available_spots: int | None = None

    class Config:
        from_attributes = True
