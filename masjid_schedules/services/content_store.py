from datetime import datetime

from sqlalchemy.orm import Session

from masjid_schedules.models.content_item import ContentItem


class ContentItemStore:
    """Read-only view over content items owned by the content CRUD side."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def find_by_id(self, masjid_id: str, item_id: str) -> ContentItem | None:
        return (
            self.db.query(ContentItem)
            .filter(ContentItem.id == item_id, ContentItem.masjid_id == masjid_id)
            .first()
        )

    def find_many(self, masjid_id: str, item_ids: list[str]) -> dict[str, ContentItem]:
        unique_ids = list(dict.fromkeys(item_ids))
        if not unique_ids:
            return {}
        rows = (
            self.db.query(ContentItem)
            .filter(ContentItem.masjid_id == masjid_id, ContentItem.id.in_(unique_ids))
            .all()
        )
        return {row.id: row for row in rows}

    def missing_ids(self, masjid_id: str, item_ids: list[str]) -> list[str]:
        found = self.find_many(masjid_id, item_ids)
        return [item_id for item_id in dict.fromkeys(item_ids) if item_id not in found]


def is_playable(item: ContentItem | None, now: datetime) -> bool:
    if item is None or not item.is_active:
        return False
    if item.start_date is not None and item.start_date > now:
        return False
    if item.end_date is not None and item.end_date < now:
        return False
    return True
