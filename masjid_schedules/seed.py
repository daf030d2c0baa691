from sqlalchemy.orm import Session
from masjid_schedules.db import SessionLocal, Base, engine, ensure_sqlite_schema
from masjid_schedules.models.content_item import ContentItem, ContentType
from masjid_schedules.models.screen import Screen
from masjid_schedules.services.assignment import ScreenAssignmentResolver
from masjid_schedules.services.schedule_service import ScheduleService, SlideRef

DEMO_MASJID_ID = "demo-masjid"


def seed(masjid_id: str = DEMO_MASJID_ID) -> None:
    Base.metadata.create_all(bind=engine)
    ensure_sqlite_schema()
    db: Session = SessionLocal()
    try:
        items = [
            ContentItem(
                masjid_id=masjid_id,
                type=ContentType.ANNOUNCEMENT.value,
                title="Welcome",
                content={"text": "Assalamu alaikum and welcome to the masjid."},
                duration=20,
            ),
            ContentItem(
                masjid_id=masjid_id,
                type=ContentType.VERSE_HADITH.value,
                title="Verse of the day",
                content={"arabic": "", "translation": "Indeed, with hardship comes ease.", "reference": "94:6"},
                duration=30,
            ),
            ContentItem(
                masjid_id=masjid_id,
                type=ContentType.EVENT.value,
                title="Community iftar",
                content={"location": "Main hall"},
                duration=15,
            ),
        ]
        db.add_all(items)
        db.commit()
        for item in items:
            db.refresh(item)

        service = ScheduleService(db)
        main = service.create(
            masjid_id,
            "Main rotation",
            description="Shown on every screen without an assignment",
            slides=[SlideRef(id=item.id) for item in items],
        )
        jumuah = service.duplicate(masjid_id, main.id, "Jumuah")

        lobby = Screen(masjid_id=masjid_id, name="Lobby")
        prayer_hall = Screen(masjid_id=masjid_id, name="Prayer hall")
        db.add(lobby)
        db.add(prayer_hall)
        db.commit()
        db.refresh(prayer_hall)
        ScreenAssignmentResolver(db).assign(masjid_id, prayer_hall.id, jumuah.id)
    finally:
        db.close()


if __name__ == "__main__":
    seed()
