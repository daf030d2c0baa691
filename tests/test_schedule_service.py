import threading

import pytest
from sqlalchemy.exc import OperationalError

from conftest import MASJID, OTHER_MASJID, default_count, item_rows
from masjid_schedules.models.schedule import ContentSchedule
from masjid_schedules.services.errors import (
    INVALID_SLIDE_ID,
    IS_DEFAULT,
    LAST_SCHEDULE,
    NAME_REQUIRED,
    UNKNOWN_CONTENT_ITEM,
    InternalError,
    InvariantError,
    NotFoundError,
    ValidationError,
)
from masjid_schedules.services.schedule_service import (
    ScheduleService,
    SlideRef,
    normalize_slides,
)


@pytest.fixture
def service(db):
    return ScheduleService(db)


def slides_for(ids, orders=None):
    orders = orders or [None] * len(ids)
    return [SlideRef(id=item_id, order=order) for item_id, order in zip(ids, orders)]


def test_first_schedule_is_forced_active_default(service, make_items):
    ids = make_items(2)
    schedule = service.create(MASJID, "  Main  ", is_active=False, slides=slides_for(ids))

    assert schedule.name == "Main"
    assert schedule.is_default is True
    assert schedule.is_active is True


def test_later_schedules_keep_requested_active_flag(service, db):
    service.create(MASJID, "Main")
    second = service.create(MASJID, "Ramadan", is_active=False)

    assert second.is_default is False
    assert second.is_active is False
    assert default_count(db) == 1


def test_first_schedule_is_per_masjid(service):
    service.create(MASJID, "Main")
    other = service.create(OTHER_MASJID, "Other main")

    assert other.is_default is True


def test_create_orders_slides_by_position(service, db, make_items):
    ids = make_items(3)
    schedule = service.create(MASJID, "Main", slides=slides_for(ids, [7, 3, 3]))

    rows = item_rows(db, schedule.id)
    assert [row.order for row in rows] == [0, 1, 2]
    assert [row.content_item_id for row in rows] == ids


def test_create_rejects_blank_name(service, db):
    with pytest.raises(ValidationError) as excinfo:
        service.create(MASJID, "   ")

    assert excinfo.value.code == NAME_REQUIRED
    assert db.query(ContentSchedule).count() == 0


def test_create_rejects_placeholder_slides_before_writing(service, db, make_items):
    ids = make_items(1)
    slides = [SlideRef(id=ids[0]), SlideRef(id="placeholder-2"), SlideRef(id=" ")]

    with pytest.raises(InvariantError) as excinfo:
        service.create(MASJID, "Main", slides=slides)

    assert excinfo.value.code == INVALID_SLIDE_ID
    assert "#1 (placeholder-2)" in excinfo.value.message
    assert "#2 (empty id)" in excinfo.value.message
    assert db.query(ContentSchedule).count() == 0


def test_create_rejects_content_of_another_masjid(service, db, make_items):
    foreign = make_items(1, masjid_id=OTHER_MASJID)

    with pytest.raises(ValidationError) as excinfo:
        service.create(MASJID, "Main", slides=slides_for(foreign + ["does-not-exist"]))

    assert excinfo.value.code == UNKNOWN_CONTENT_ITEM
    assert foreign[0] in excinfo.value.message
    assert "does-not-exist" in excinfo.value.message
    assert db.query(ContentSchedule).count() == 0


def test_create_falls_back_to_non_default_when_first_schedule_races(service, db, monkeypatch):
    service.create(MASJID, "Created elsewhere")
    # Simulate a writer that counted before the other commit landed.
    monkeypatch.setattr(service.repository, "count", lambda masjid_id: 0)

    second = service.create(MASJID, "Late", is_active=False)

    assert second.is_default is False
    assert second.is_active is False
    assert default_count(db) == 1


def test_update_with_empty_slides_clears_items(service, db, make_items):
    ids = make_items(2)
    schedule = service.create(MASJID, "Main", slides=slides_for(ids))

    service.update(MASJID, schedule.id, slides=[])

    assert item_rows(db, schedule.id) == []


def test_update_without_slides_keeps_items(service, db, make_items):
    ids = make_items(2)
    schedule = service.create(MASJID, "Main", slides=slides_for(ids))

    updated = service.update(MASJID, schedule.id, name="Renamed", description="  ")

    assert updated.name == "Renamed"
    assert updated.description is None
    assert [row.content_item_id for row in item_rows(db, schedule.id)] == ids


def test_update_clears_description_only_when_asked(service):
    schedule = service.create(MASJID, "Main", description="Everyday")

    kept = service.update(MASJID, schedule.id, name="Renamed")
    assert kept.description == "Everyday"

    cleared = service.update(MASJID, schedule.id, clear_description=True)
    assert cleared.description is None
    assert cleared.name == "Renamed"


def test_update_duplicate_orders_are_renumbered_by_position(service, db, make_items):
    ids = make_items(3)
    schedule = service.create(MASJID, "Main")

    service.update(MASJID, schedule.id, slides=slides_for(ids, [0, 0, 1]))

    rows = item_rows(db, schedule.id)
    assert [row.order for row in rows] == [0, 1, 2]
    assert [row.content_item_id for row in rows] == ids


def test_update_keeps_distinct_client_orders(service, db, make_items):
    ids = make_items(3)
    schedule = service.create(MASJID, "Main")

    service.update(MASJID, schedule.id, slides=slides_for(ids, [10, None, 4]))

    rows = item_rows(db, schedule.id)
    assert [(row.content_item_id, row.order) for row in rows] == [(ids[1], 1), (ids[2], 4), (ids[0], 10)]


def test_normalize_slides_assigns_index_when_order_missing():
    slides = [SlideRef(id="a"), SlideRef(id="b"), SlideRef(id="a")]

    assert normalize_slides(slides) == [("a", 0), ("b", 1), ("a", 2)]


def test_update_rejects_placeholder_and_keeps_existing_slides(service, db, make_items):
    ids = make_items(2)
    schedule = service.create(MASJID, "Main", slides=slides_for(ids))

    with pytest.raises(InvariantError) as excinfo:
        service.update(MASJID, schedule.id, slides=[SlideRef(id="placeholder-1")])

    assert excinfo.value.code == INVALID_SLIDE_ID
    assert [row.content_item_id for row in item_rows(db, schedule.id)] == ids


def test_failed_slide_replace_leaves_previous_list(service, db, make_items, monkeypatch):
    ids = make_items(3)
    schedule = service.create(MASJID, "Main", slides=slides_for(ids[:2]))

    def broken_flush(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "flush", broken_flush)
    with pytest.raises(InternalError):
        service.update(MASJID, schedule.id, slides=slides_for([ids[2]]))
    monkeypatch.undo()

    assert [row.content_item_id for row in item_rows(db, schedule.id)] == ids[:2]


def test_default_cannot_be_deactivated(service, db):
    schedule = service.create(MASJID, "Main")

    with pytest.raises(InvariantError) as excinfo:
        service.update(MASJID, schedule.id, is_active=False)
    assert excinfo.value.code == IS_DEFAULT

    with pytest.raises(InvariantError):
        service.toggle_active(MASJID, schedule.id, False)

    assert service.toggle_active(MASJID, schedule.id, True).is_active is True


def test_toggle_active_on_regular_schedule(service):
    service.create(MASJID, "Main")
    other = service.create(MASJID, "Other")

    assert service.toggle_active(MASJID, other.id, False).is_active is False
    assert service.toggle_active(MASJID, other.id, True).is_active is True


def test_update_is_scoped_to_masjid(service):
    schedule = service.create(MASJID, "Main")

    with pytest.raises(NotFoundError):
        service.update(OTHER_MASJID, schedule.id, name="Hijacked")


def test_set_default_swaps_and_forces_active(service, db):
    first = service.create(MASJID, "Main")
    second = service.create(MASJID, "Ramadan", is_active=False)

    promoted = service.set_default(MASJID, second.id)

    assert promoted.id == second.id
    assert promoted.is_default is True
    assert promoted.is_active is True
    db.refresh(first)
    assert first.is_default is False
    assert default_count(db) == 1


def test_set_default_twice_leaves_last_one(service, db):
    a = service.create(MASJID, "A")
    b = service.create(MASJID, "B")
    c = service.create(MASJID, "C")

    service.set_default(MASJID, b.id)
    service.set_default(MASJID, c.id)

    defaults = db.query(ContentSchedule).filter(ContentSchedule.is_default.is_(True)).all()
    assert [schedule.id for schedule in defaults] == [c.id]
    db.refresh(a)
    assert a.is_default is False


def test_set_default_on_current_default_is_a_no_op(service, db):
    schedule = service.create(MASJID, "Main")

    assert service.set_default(MASJID, schedule.id).is_default is True
    assert default_count(db) == 1


def test_set_default_unknown_schedule_writes_nothing(service, db):
    first = service.create(MASJID, "Main")
    foreign = service.create(OTHER_MASJID, "Foreign")

    with pytest.raises(NotFoundError):
        service.set_default(MASJID, "missing")
    with pytest.raises(NotFoundError):
        service.set_default(MASJID, foreign.id)

    db.refresh(first)
    assert first.is_default is True
    assert default_count(db) == 1


def test_delete_last_schedule_is_rejected(service, db, make_items):
    ids = make_items(2)
    schedule = service.create(MASJID, "Main", slides=slides_for(ids))

    with pytest.raises(InvariantError) as excinfo:
        service.delete(MASJID, schedule.id)

    assert excinfo.value.code == LAST_SCHEDULE
    assert excinfo.value.message == "Cannot delete the last content schedule"
    assert db.query(ContentSchedule).count() == 1
    assert len(item_rows(db, schedule.id)) == 2


def test_delete_default_is_rejected(service, db):
    default = service.create(MASJID, "Main")
    service.create(MASJID, "Other")
    service.create(MASJID, "Third")

    with pytest.raises(InvariantError) as excinfo:
        service.delete(MASJID, default.id)

    assert excinfo.value.code == IS_DEFAULT
    assert db.query(ContentSchedule).count() == 3


def test_delete_removes_schedule_and_items(service, db, make_items):
    ids = make_items(2)
    service.create(MASJID, "Main")
    other_id = service.create(MASJID, "Other", slides=slides_for(ids)).id

    service.delete(MASJID, other_id)

    assert db.query(ContentSchedule).filter(ContentSchedule.id == other_id).count() == 0
    assert item_rows(db, other_id) == []


def test_delete_unknown_schedule(service):
    service.create(MASJID, "Main")

    with pytest.raises(NotFoundError):
        service.delete(MASJID, "missing")


def test_duplicate_copies_items_with_new_ids(service, db, make_items):
    ids = make_items(3)
    source = service.create(MASJID, "Main", description="Everyday", slides=slides_for(ids))

    copy = service.duplicate(MASJID, source.id, "Main (copy)")

    assert copy.id != source.id
    assert copy.is_default is False
    assert copy.is_active is True
    assert copy.description == "Everyday"
    source_rows = item_rows(db, source.id)
    copy_rows = item_rows(db, copy.id)
    assert [row.content_item_id for row in copy_rows] == ids
    assert [row.order for row in copy_rows] == [row.order for row in source_rows] == [0, 1, 2]
    assert not {row.id for row in copy_rows} & {row.id for row in source_rows}


def test_duplicate_missing_source(service):
    with pytest.raises(NotFoundError):
        service.duplicate(MASJID, "missing", "Copy")


def test_concurrent_default_swaps_keep_single_default(session_factory):
    setup = session_factory()
    service = ScheduleService(setup)
    ids = [service.create(MASJID, name).id for name in ("A", "B", "C")]
    setup.close()

    errors = []
    observed = []

    def swapper(targets):
        session = session_factory()
        try:
            worker = ScheduleService(session)
            for _ in range(5):
                for target in targets:
                    worker.set_default(MASJID, target)
        except Exception as exc:  # surfaced through the assertion below
            errors.append(exc)
        finally:
            session.close()

    def reader(stop):
        session = session_factory()
        try:
            while True:
                observed.append(default_count(session))
                session.commit()
                if stop.is_set():
                    break
        finally:
            session.close()

    stop = threading.Event()
    reader_thread = threading.Thread(target=reader, args=(stop,))
    reader_thread.start()
    workers = [
        threading.Thread(target=swapper, args=([ids[0], ids[1]],)),
        threading.Thread(target=swapper, args=([ids[2], ids[1]],)),
    ]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()
    stop.set()
    reader_thread.join()

    assert errors == []
    assert observed and set(observed) == {1}
    check = session_factory()
    try:
        assert default_count(check) == 1
    finally:
        check.close()
