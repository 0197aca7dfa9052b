from datetime import date, datetime, time
from pydantic import BaseModel, Field


class ScheduleCreate(BaseModel):
    class_type_id: int = Field(alias="classTypeId")
    day_of_week: str = Field(alias="dayOfWeek")
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    max_students: int | None = Field(default=None, alias="maxStudents")
    is_public: bool = Field(default=False, alias="isPublic")
    valid_from: str | None = Field(default=None, alias="validFrom")
    valid_until: str | None = Field(default=None, alias="validUntil")

    class Config:
        populate_by_name = True


class Schedule(BaseModel):
    id: int
    tenant_id: int
    class_type_id: int
    day_of_week: str
    start_time: time
    end_time: time
    max_students: int | None = None
    valid_from: date | None = None
    valid_until: date | None = None
    is_public: bool
    is_active: bool
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class MaterializeRequest(BaseModel):
    from_date: str = Field(alias="from")
    to_date: str = Field(alias="to")

    class Config:
        populate_by_name = True


class MaterializeResult(BaseModel):
    schedule_id: int
    created: int
