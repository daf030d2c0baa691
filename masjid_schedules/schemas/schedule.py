from datetime import datetime
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class SlideIn(CamelModel):
    id: str
    order: int | None = Field(default=None, ge=0)


class ScheduleCreateIn(CamelModel):
    name: str
    description: str | None = None
    is_active: bool = True
    slides: list[SlideIn] = Field(default_factory=list)


class ScheduleUpdateIn(CamelModel):
    name: str | None = None
    description: str | None = None
    is_active: bool | None = None
    slides: list[SlideIn] | None = None


class ToggleActiveIn(CamelModel):
    is_active: bool


class DuplicateIn(CamelModel):
    source_schedule_id: str
    name: str


class ScheduleItemOut(CamelModel):
    id: str
    schedule_id: str
    content_item_id: str
    order: int
    type: str
    duration: int
    title: str | None = None


class ScheduleOut(CamelModel):
    id: str
    masjid_id: str
    name: str
    description: str | None = None
    is_active: bool
    is_default: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None
    items: list[ScheduleItemOut] = Field(default_factory=list)
