import logging
import threading
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from masjid_schedules.models.schedule import ContentSchedule, ScheduleItem
from masjid_schedules.services.errors import (
    IS_DEFAULT,
    DefaultScheduleConflict,
    InternalError,
    InvariantError,
)

logger = logging.getLogger(__name__)

_tenant_locks: dict[str, threading.RLock] = {}
_tenant_locks_guard = threading.Lock()


def _lock_for(masjid_id: str) -> threading.RLock:
    with _tenant_locks_guard:
        lock = _tenant_locks.get(masjid_id)
        if lock is None:
            lock = threading.RLock()
            _tenant_locks[masjid_id] = lock
        return lock


class ScheduleRepository:
    """Durable storage of schedules and their ordered items, scoped per masjid.

    Every method that writes more than one row runs inside ``transaction()``,
    which commits on success and rolls back everything on failure.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    @contextmanager
    def tenant_lock(self, masjid_id: str):
        # Serializes default-affecting writes of one masjid inside this process.
        # Across processes the row locks and the partial unique index take over.
        lock = _lock_for(masjid_id)
        with lock:
            yield

    @contextmanager
    def transaction(self):
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Schedule transaction rolled back: %s", exc)
            raise InternalError("Failed to save content schedule changes, please retry") from exc
        except Exception:
            self.db.rollback()
            raise

    # Reads

    def get(self, masjid_id: str, schedule_id: str) -> ContentSchedule | None:
        return (
            self.db.query(ContentSchedule)
            .filter(ContentSchedule.id == schedule_id, ContentSchedule.masjid_id == masjid_id)
            .first()
        )

    def get_default(self, masjid_id: str) -> ContentSchedule | None:
        return (
            self.db.query(ContentSchedule)
            .filter(ContentSchedule.masjid_id == masjid_id, ContentSchedule.is_default.is_(True))
            .first()
        )

    def count(self, masjid_id: str) -> int:
        return self.db.query(ContentSchedule).filter(ContentSchedule.masjid_id == masjid_id).count()

    def all_for(self, masjid_id: str) -> list[ContentSchedule]:
        return (
            self.db.query(ContentSchedule)
            .filter(ContentSchedule.masjid_id == masjid_id)
            .order_by(
                ContentSchedule.is_default.desc(),
                ContentSchedule.created_at.asc(),
                ContentSchedule.name.asc(),
            )
            .all()
        )

    def items(self, schedule_id: str) -> list[ScheduleItem]:
        return (
            self.db.query(ScheduleItem)
            .filter(ScheduleItem.schedule_id == schedule_id)
            .order_by(ScheduleItem.order.asc(), ScheduleItem.id.asc())
            .all()
        )

    def items_for(self, schedule_ids: list[str]) -> dict[str, list[ScheduleItem]]:
        grouped: dict[str, list[ScheduleItem]] = {schedule_id: [] for schedule_id in schedule_ids}
        if not schedule_ids:
            return grouped
        rows = (
            self.db.query(ScheduleItem)
            .filter(ScheduleItem.schedule_id.in_(schedule_ids))
            .order_by(ScheduleItem.schedule_id.asc(), ScheduleItem.order.asc(), ScheduleItem.id.asc())
            .all()
        )
        for row in rows:
            grouped[row.schedule_id].append(row)
        return grouped

    # Writes

    def create(
        self,
        masjid_id: str,
        name: str,
        description: str | None,
        is_active: bool,
        is_default: bool,
        slides: list[tuple[str, int]],
    ) -> ContentSchedule:
        schedule = ContentSchedule(
            masjid_id=masjid_id,
            name=name,
            description=description,
            is_active=is_active,
            is_default=is_default,
        )
        try:
            with self.transaction():
                self.db.add(schedule)
                self.db.flush()
                for content_item_id, order in slides:
                    self.db.add(
                        ScheduleItem(schedule_id=schedule.id, content_item_id=content_item_id, order=order)
                    )
                self.db.flush()
        except InternalError as exc:
            if is_default and isinstance(exc.__cause__, IntegrityError):
                raise DefaultScheduleConflict(
                    "Another default content schedule was created concurrently"
                ) from exc.__cause__
            raise
        self.db.refresh(schedule)
        return schedule

    def update(
        self,
        schedule: ContentSchedule,
        fields: dict,
        slides: list[tuple[str, int]] | None = None,
    ) -> ContentSchedule:
        """Apply ``fields`` and, when ``slides`` is not None, replace the slide list.

        The slide list is deleted and recreated in the same transaction, so
        readers see either the old list or the new one.
        """
        with self.transaction():
            for key, value in fields.items():
                setattr(schedule, key, value)
            if slides is not None:
                self.db.query(ScheduleItem).filter(ScheduleItem.schedule_id == schedule.id).delete(
                    synchronize_session=False
                )
                for content_item_id, order in slides:
                    self.db.add(
                        ScheduleItem(schedule_id=schedule.id, content_item_id=content_item_id, order=order)
                    )
            self.db.flush()
        self.db.refresh(schedule)
        return schedule

    def set_default(self, masjid_id: str, schedule_id: str) -> ContentSchedule | None:
        """Clear the current default and promote ``schedule_id`` in one transaction.

        Returns None, without writing, when the schedule does not exist in the masjid.
        """
        with self.tenant_lock(masjid_id), self.transaction():
            rows = (
                self.db.query(ContentSchedule)
                .filter(ContentSchedule.masjid_id == masjid_id)
                .with_for_update()
                .all()
            )
            target = next((row for row in rows if row.id == schedule_id), None)
            if target is None:
                return None
            if target.is_default and target.is_active:
                return target
            self.db.query(ContentSchedule).filter(
                ContentSchedule.masjid_id == masjid_id,
                ContentSchedule.is_default.is_(True),
                ContentSchedule.id != schedule_id,
            ).update({ContentSchedule.is_default: False}, synchronize_session=False)
            self.db.query(ContentSchedule).filter(ContentSchedule.id == schedule_id).update(
                {
                    ContentSchedule.is_default: True,
                    ContentSchedule.is_active: True,
                    ContentSchedule.updated_at: datetime.utcnow(),
                },
                synchronize_session=False,
            )
        self.db.refresh(target)
        return target

    def delete(self, schedule: ContentSchedule) -> None:
        """Delete the slides, then the schedule, in one transaction."""
        schedule_id = schedule.id
        with self.transaction():
            self.db.query(ScheduleItem).filter(ScheduleItem.schedule_id == schedule_id).delete(
                synchronize_session=False
            )
            deleted = (
                self.db.query(ContentSchedule)
                .filter(ContentSchedule.id == schedule_id, ContentSchedule.is_default.is_(False))
                .delete(synchronize_session=False)
            )
            if deleted != 1:
                # Became the default after the caller's checks ran.
                raise InvariantError(
                    "Cannot delete the default content schedule. Set another schedule as default first",
                    IS_DEFAULT,
                )
