import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from masjid_schedules import main
from masjid_schedules.db import Base, get_db, make_engine
from masjid_schedules.models.content_item import ContentItem, ContentType
from masjid_schedules.models.schedule import ContentSchedule, ScheduleItem
from masjid_schedules.models.screen import Screen
from masjid_schedules.services.realtime import RealtimeHub

MASJID = "masjid-1"
OTHER_MASJID = "masjid-2"


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'schedules.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_items(db):
    """Create content items and return their ids in creation order."""

    def _make(count, masjid_id=MASJID, **overrides):
        items = []
        for index in range(count):
            fields = {
                "masjid_id": masjid_id,
                "type": ContentType.ANNOUNCEMENT.value,
                "title": f"Item {index}",
                "content": {"text": f"Body {index}"},
                "duration": 10 + index,
            }
            fields.update(overrides)
            items.append(ContentItem(**fields))
        db.add_all(items)
        db.commit()
        return [item.id for item in items]

    return _make


@pytest.fixture
def make_screen(db):
    def _make(masjid_id=MASJID, schedule_id=None, name="Lobby"):
        screen = Screen(masjid_id=masjid_id, name=name, schedule_id=schedule_id)
        db.add(screen)
        db.commit()
        db.refresh(screen)
        return screen

    return _make


@pytest.fixture
def client(engine, session_factory, monkeypatch):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr(main, "engine", engine)
    monkeypatch.setattr(main, "hub", RealtimeHub())
    main.app.dependency_overrides[get_db] = _get_db
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()


def default_count(db, masjid_id=MASJID):
    db.expire_all()
    return (
        db.query(ContentSchedule)
        .filter(ContentSchedule.masjid_id == masjid_id, ContentSchedule.is_default.is_(True))
        .count()
    )


def item_rows(db, schedule_id):
    db.expire_all()
    return (
        db.query(ScheduleItem)
        .filter(ScheduleItem.schedule_id == schedule_id)
        .order_by(ScheduleItem.order.asc())
        .all()
    )
