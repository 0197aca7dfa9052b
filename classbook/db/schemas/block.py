from datetime import datetime
from pydantic import BaseModel, Field


class BlockCreate(BaseModel):
    starts_at: str = Field(alias="startsAt")
    ends_at: str = Field(alias="endsAt")
    title: str | None = None
    reason: str | None = None
    is_recurring: bool = Field(default=False, alias="isRecurring")
    recurrence_rule: str | None = Field(default=None, alias="recurrenceRule")

    class Config:
        populate_by_name = True


class Block(BaseModel):
    id: int
    tenant_id: int
    starts_at: datetime
    ends_at: datetime
    title: str | None = None
    reason: str | None = None
    is_recurring: bool
    recurrence_rule: str | None = None

    class Config:
        from_attributes = True
