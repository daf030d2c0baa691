from datetime import datetime
from typing import Any

from pydantic import Field

from masjid_schedules.schemas.schedule import CamelModel, ScheduleOut


class ScreenCreateIn(CamelModel):
    name: str = Field(..., min_length=1)
    orientation: str = "landscape"
    schedule_id: str | None = None


class AssignScheduleIn(CamelModel):
    schedule_id: str | None = None


class ScreenOut(CamelModel):
    id: str
    masjid_id: str
    name: str
    orientation: str | None = None
    status: str | None = None
    last_seen: datetime | None = None
    schedule_id: str | None = None


class PlayableSlideOut(CamelModel):
    id: str
    content_item_id: str
    order: int
    type: str
    title: str
    duration: int
    content: Any = None


class ScreenContentOut(CamelModel):
    """Display polling payload. ``status`` is "empty" when nothing is configured."""

    status: str
    source: str | None = None
    screen: ScreenOut
    schedule: ScheduleOut | None = None
    slides: list[PlayableSlideOut] = Field(default_factory=list)
    last_updated: datetime