import logging
import os
from dataclasses import dataclass

from sqlalchemy.orm import Session

from masjid_schedules.models.schedule import ContentSchedule
from masjid_schedules.services.content_store import ContentItemStore
from masjid_schedules.services.errors import (
    INVALID_SLIDE_ID,
    IS_DEFAULT,
    LAST_SCHEDULE,
    NAME_REQUIRED,
    UNKNOWN_CONTENT_ITEM,
    DefaultScheduleConflict,
    InvariantError,
    NotFoundError,
    ValidationError,
)
from masjid_schedules.services.schedule_repository import ScheduleRepository

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = os.getenv("MASJID_PLACEHOLDER_PREFIX", "placeholder")


@dataclass(frozen=True)
class SlideRef:
    """One requested slide: a content item id and an optional position."""

    id: str
    order: int | None = None


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Schedule name is required", NAME_REQUIRED)
    return cleaned


def _clean_description(description: str | None) -> str | None:
    return (description or "").strip() or None


def _require_masjid(masjid_id: str | None) -> str:
    cleaned = (masjid_id or "").strip()
    if not cleaned:
        raise ValidationError("masjid_id is required")
    return cleaned


def check_slide_ids(slides: list[SlideRef]) -> None:
    offending = []
    for index, slide in enumerate(slides):
        slide_id = (slide.id or "").strip()
        if not slide_id or slide_id.startswith(PLACEHOLDER_PREFIX):
            offending.append(f"#{index} ({slide_id or 'empty id'})")
    if offending:
        raise InvariantError(
            "Slides must reference saved content items. Invalid slides: " + ", ".join(offending),
            INVALID_SLIDE_ID,
        )


def normalize_slides(slides: list[SlideRef]) -> list[tuple[str, int]]:
    """Resolve the final ``(content_item_id, order)`` pairs for a slide list.

    Missing orders take the slide's index. If any two slides end up sharing an
    order the whole list is renumbered by index, so array position wins.
    """
    orders = [slide.order if slide.order is not None else index for index, slide in enumerate(slides)]
    if len(set(orders)) != len(orders):
        orders = list(range(len(slides)))
    return [(slide.id.strip(), order) for slide, order in zip(slides, orders)]


class ScheduleService:
    def __init__(
        self,
        db: Session,
        repository: ScheduleRepository | None = None,
        content_store: ContentItemStore | None = None,
    ) -> None:
        self.db = db
        self.repository = repository or ScheduleRepository(db)
        self.content_store = content_store or ContentItemStore(db)

    def _get_or_404(self, masjid_id: str, schedule_id: str) -> ContentSchedule:
        schedule = self.repository.get(masjid_id, schedule_id)
        if schedule is None:
            raise NotFoundError("Content schedule not found")
        return schedule

    def _validate_slides(self, masjid_id: str, slides: list[SlideRef]) -> None:
        check_slide_ids(slides)
        missing = self.content_store.missing_ids(masjid_id, [slide.id.strip() for slide in slides])
        if missing:
            raise ValidationError(
                "Unknown content items: " + ", ".join(missing),
                UNKNOWN_CONTENT_ITEM,
            )

    def create(
        self,
        masjid_id: str,
        name: str,
        description: str | None = None,
        is_active: bool = True,
        slides: list[SlideRef] | None = None,
    ) -> ContentSchedule:
        masjid_id = _require_masjid(masjid_id)
        name = _clean_name(name)
        slides = slides or []
        self._validate_slides(masjid_id, slides)
        rows = [(slide.id.strip(), index) for index, slide in enumerate(slides)]

        with self.repository.tenant_lock(masjid_id):
            is_first = self.repository.count(masjid_id) == 0
            try:
                schedule = self.repository.create(
                    masjid_id,
                    name,
                    _clean_description(description),
                    is_active=True if is_first else bool(is_active),
                    is_default=is_first,
                    slides=rows,
                )
            except DefaultScheduleConflict:
                # Another writer created the first schedule in the meantime.
                logger.warning("Default schedule race for masjid %s, creating %r as non-default", masjid_id, name)
                schedule = self.repository.create(
                    masjid_id,
                    name,
                    _clean_description(description),
                    is_active=bool(is_active),
                    is_default=False,
                    slides=rows,
                )
        logger.info(
            "Created content schedule %s for masjid %s (default=%s, slides=%d)",
            schedule.id,
            masjid_id,
            schedule.is_default,
            len(rows),
        )
        return schedule

    def update(
        self,
        masjid_id: str,
        schedule_id: str,
        name: str | None = None,
        description: str | None = None,
        is_active: bool | None = None,
        slides: list[SlideRef] | None = None,
        clear_description: bool = False,
    ) -> ContentSchedule:
        """Patch a schedule. ``slides=None`` keeps the slide list, ``[]`` clears it.

        ``description=None`` keeps the description unless ``clear_description`` is set.
        """
        masjid_id = _require_masjid(masjid_id)
        fields = {}
        if name is not None:
            fields["name"] = _clean_name(name)
        if description is not None:
            fields["description"] = _clean_description(description)
        elif clear_description:
            fields["description"] = None

        rows = None
        if slides is not None:
            if slides:
                self._validate_slides(masjid_id, slides)
            rows = normalize_slides(slides)

        with self.repository.tenant_lock(masjid_id):
            schedule = self._get_or_404(masjid_id, schedule_id)
            if is_active is not None:
                if schedule.is_default and not is_active:
                    raise InvariantError("Cannot deactivate the default content schedule", IS_DEFAULT)
                fields["is_active"] = bool(is_active)
            schedule = self.repository.update(schedule, fields, rows)
        logger.info(
            "Updated content schedule %s (fields=%s, slides=%s)",
            schedule.id,
            sorted(fields),
            "unchanged" if rows is None else len(rows),
        )
        return schedule

    def toggle_active(self, masjid_id: str, schedule_id: str, is_active: bool) -> ContentSchedule:
        return self.update(masjid_id, schedule_id, is_active=is_active)

    def set_default(self, masjid_id: str, schedule_id: str) -> ContentSchedule:
        masjid_id = _require_masjid(masjid_id)
        schedule = self.repository.set_default(masjid_id, schedule_id)
        if schedule is None:
            raise NotFoundError("Content schedule not found")
        logger.info("Content schedule %s is now the default for masjid %s", schedule.id, masjid_id)
        return schedule

    def delete(self, masjid_id: str, schedule_id: str) -> None:
        masjid_id = _require_masjid(masjid_id)
        with self.repository.tenant_lock(masjid_id):
            schedule = self._get_or_404(masjid_id, schedule_id)
            if self.repository.count(masjid_id) <= 1:
                raise InvariantError("Cannot delete the last content schedule", LAST_SCHEDULE)
            if schedule.is_default:
                raise InvariantError(
                    "Cannot delete the default content schedule. Set another schedule as default first",
                    IS_DEFAULT,
                )
            self.repository.delete(schedule)
        logger.info("Deleted content schedule %s for masjid %s", schedule_id, masjid_id)

    def duplicate(self, masjid_id: str, source_schedule_id: str, name: str) -> ContentSchedule:
        masjid_id = _require_masjid(masjid_id)
        source = self.repository.get(masjid_id, source_schedule_id)
        if source is None:
            raise NotFoundError("Source content schedule not found")
        name = _clean_name(name)
        rows = [(item.content_item_id, item.order) for item in self.repository.items(source.id)]
        schedule = self.repository.create(
            masjid_id,
            name,
            source.description,
            is_active=True,
            is_default=False,
            slides=rows,
        )
        logger.info("Duplicated content schedule %s into %s", source.id, schedule.id)
        return schedule
