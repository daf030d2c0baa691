import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from masjid_schedules.models.schedule import ContentSchedule
from masjid_schedules.models.screen import Screen
from masjid_schedules.schemas.screen import PlayableSlideOut, ScreenContentOut, ScreenOut
from masjid_schedules.services.content_store import ContentItemStore, is_playable
from masjid_schedules.services.errors import InternalError, NotFoundError
from masjid_schedules.services.schedule_query import ScheduleQuery
from masjid_schedules.services.schedule_repository import ScheduleRepository

logger = logging.getLogger(__name__)

SOURCE_ASSIGNED = "assigned"
SOURCE_DEFAULT = "default"


@dataclass
class ResolvedSchedule:
    schedule: ContentSchedule | None
    source: str | None

    @property
    def is_empty(self) -> bool:
        return self.schedule is None


class ScreenAssignmentResolver:
    """Decides which schedule a screen plays.

    An explicit assignment wins only while the schedule exists in the screen's
    masjid and is active. Anything else falls back to the masjid default, and a
    masjid without schedules yields an empty result instead of an error.
    Reads only; no locking.
    """

    def __init__(
        self,
        db: Session,
        repository: ScheduleRepository | None = None,
        content_store: ContentItemStore | None = None,
    ) -> None:
        self.db = db
        self.repository = repository or ScheduleRepository(db)
        self.content_store = content_store or ContentItemStore(db)

    def _get_screen(self, screen_id: str, masjid_id: str | None = None) -> Screen:
        query = self.db.query(Screen).filter(Screen.id == screen_id)
        if masjid_id is not None:
            query = query.filter(Screen.masjid_id == masjid_id)
        screen = query.first()
        if screen is None:
            raise NotFoundError("Screen not found")
        return screen

    def resolve(self, screen: Screen) -> ResolvedSchedule:
        if screen.schedule_id:
            assigned = self.repository.get(screen.masjid_id, screen.schedule_id)
            if assigned is not None and assigned.is_active:
                return ResolvedSchedule(assigned, SOURCE_ASSIGNED)
            logger.info(
                "Screen %s assignment %s is missing or inactive, using masjid default",
                screen.id,
                screen.schedule_id,
            )
        default = self.repository.get_default(screen.masjid_id)
        if default is None:
            return ResolvedSchedule(None, None)
        return ResolvedSchedule(default, SOURCE_DEFAULT)

    def resolve_for_screen(self, screen_id: str) -> tuple[Screen, ResolvedSchedule]:
        screen = self._get_screen(screen_id)
        return screen, self.resolve(screen)

    def content_for_screen(self, screen_id: str, now: datetime | None = None) -> ScreenContentOut:
        now = now or datetime.utcnow()
        screen, resolved = self.resolve_for_screen(screen_id)
        screen_out = ScreenOut.model_validate(screen)
        if resolved.is_empty:
            return ScreenContentOut(status="empty", source=None, screen=screen_out, last_updated=now)

        items = self.repository.items(resolved.schedule.id)
        contents = self.content_store.find_many(screen.masjid_id, [item.content_item_id for item in items])
        slides = []
        for item in items:
            content = contents.get(item.content_item_id)
            if not is_playable(content, now):
                continue
            slides.append(
                PlayableSlideOut(
                    id=item.id,
                    content_item_id=item.content_item_id,
                    order=item.order,
                    type=content.type,
                    title=content.title,
                    duration=content.duration,
                    content=content.content,
                )
            )
        schedule_out = ScheduleQuery(self.db, self.repository, self.content_store).describe(resolved.schedule)
        return ScreenContentOut(
            status="ok",
            source=resolved.source,
            screen=screen_out,
            schedule=schedule_out,
            slides=slides,
            last_updated=now,
        )

    def assign(self, masjid_id: str, screen_id: str, schedule_id: str | None) -> Screen:
        """Point a screen at a schedule, or back at the default with ``None``."""
        screen = self._get_screen(screen_id, masjid_id)
        schedule_id = (schedule_id or "").strip() or None
        if schedule_id is not None and self.repository.get(masjid_id, schedule_id) is None:
            raise NotFoundError("Content schedule not found")
        try:
            screen.schedule_id = schedule_id
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise InternalError("Failed to assign content schedule, please retry") from exc
        self.db.refresh(screen)
        logger.info("Screen %s assigned to schedule %s", screen.id, schedule_id or "<default>")
        return screen
