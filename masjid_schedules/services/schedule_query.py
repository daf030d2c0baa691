import logging

from sqlalchemy.orm import Session

from masjid_schedules.models.content_item import ContentItem
from masjid_schedules.models.schedule import ContentSchedule, ScheduleItem
from masjid_schedules.schemas.schedule import ScheduleItemOut, ScheduleOut
from masjid_schedules.services.content_store import ContentItemStore
from masjid_schedules.services.errors import NotFoundError
from masjid_schedules.services.schedule_repository import ScheduleRepository

logger = logging.getLogger(__name__)

UNKNOWN_TYPE = "Unknown"


def item_view(item: ScheduleItem, content: ContentItem | None) -> ScheduleItemOut:
    if content is None:
        return ScheduleItemOut(
            id=item.id,
            schedule_id=item.schedule_id,
            content_item_id=item.content_item_id,
            order=item.order,
            type=UNKNOWN_TYPE,
            duration=0,
            title=None,
        )
    return ScheduleItemOut(
        id=item.id,
        schedule_id=item.schedule_id,
        content_item_id=item.content_item_id,
        order=item.order,
        type=content.type,
        duration=content.duration or 0,
        title=content.title,
    )


def schedule_view(
    schedule: ContentSchedule,
    items: list[ScheduleItem],
    contents: dict[str, ContentItem],
) -> ScheduleOut:
    missing = [item.content_item_id for item in items if item.content_item_id not in contents]
    if missing:
        logger.warning(
            "Content schedule %s references missing content items: %s",
            schedule.id,
            ", ".join(missing),
        )
    return ScheduleOut(
        id=schedule.id,
        masjid_id=schedule.masjid_id,
        name=schedule.name,
        description=schedule.description,
        is_active=schedule.is_active,
        is_default=schedule.is_default,
        created_at=schedule.created_at,
        updated_at=schedule.updated_at,
        items=[item_view(item, contents.get(item.content_item_id)) for item in items],
    )


class ScheduleQuery:
    """Read side for the admin console: schedules with denormalized slide details."""

    def __init__(
        self,
        db: Session,
        repository: ScheduleRepository | None = None,
        content_store: ContentItemStore | None = None,
    ) -> None:
        self.repository = repository or ScheduleRepository(db)
        self.content_store = content_store or ContentItemStore(db)

    def describe(self, schedule: ContentSchedule) -> ScheduleOut:
        items = self.repository.items(schedule.id)
        contents = self.content_store.find_many(schedule.masjid_id, [item.content_item_id for item in items])
        return schedule_view(schedule, items, contents)

    def get_schedule(self, masjid_id: str, schedule_id: str) -> ScheduleOut:
        schedule = self.repository.get(masjid_id, schedule_id)
        if schedule is None:
            raise NotFoundError("Content schedule not found")
        return self.describe(schedule)

    def list_schedules(self, masjid_id: str) -> list[ScheduleOut]:
        schedules = self.repository.all_for(masjid_id)
        grouped = self.repository.items_for([schedule.id for schedule in schedules])
        content_ids = [item.content_item_id for items in grouped.values() for item in items]
        contents = self.content_store.find_many(masjid_id, content_ids)
        return [schedule_view(schedule, grouped[schedule.id], contents) for schedule in schedules]
