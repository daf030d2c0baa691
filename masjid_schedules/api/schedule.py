from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session
from masjid_schedules.db import get_db
from masjid_schedules.schemas.schedule import (
    DuplicateIn,
    ScheduleCreateIn,
    ScheduleOut,
    ScheduleUpdateIn,
    ToggleActiveIn,
)
from masjid_schedules.services.errors import ScheduleError
from masjid_schedules.services.schedule_query import ScheduleQuery
from masjid_schedules.services.schedule_service import ScheduleService, SlideRef

router = APIRouter(prefix="/schedules", tags=["schedules"])


def http_error(exc: ScheduleError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())


def _masjid_id(masjid_id: str) -> str:
    cleaned = (masjid_id or "").strip()
    if not cleaned:
        raise HTTPException(status_code=400, detail={"code": "VALIDATION", "message": "masjid_id is required"})
    return cleaned


@router.get("", response_model=list[ScheduleOut])
def list_schedules(masjid_id: str, db: Session = Depends(get_db)):
    return ScheduleQuery(db).list_schedules(_masjid_id(masjid_id))


@router.get("/{schedule_id}", response_model=ScheduleOut)
def get_schedule(schedule_id: str, masjid_id: str, db: Session = Depends(get_db)):
    try:
        return ScheduleQuery(db).get_schedule(_masjid_id(masjid_id), schedule_id)
    except ScheduleError as exc:
        raise http_error(exc) from exc


@router.post("", response_model=ScheduleOut, status_code=201)
def create_schedule(masjid_id: str, body: ScheduleCreateIn, db: Session = Depends(get_db)):
    try:
        schedule = ScheduleService(db).create(
            _masjid_id(masjid_id),
            body.name,
            description=body.description,
            is_active=body.is_active,
            slides=[SlideRef(id=slide.id, order=slide.order) for slide in body.slides],
        )
    except ScheduleError as exc:
        raise http_error(exc) from exc
    return ScheduleQuery(db).describe(schedule)


@router.post("/duplicate", response_model=ScheduleOut, status_code=201)
def duplicate_schedule(masjid_id: str, body: DuplicateIn, db: Session = Depends(get_db)):
    try:
        schedule = ScheduleService(db).duplicate(_masjid_id(masjid_id), body.source_schedule_id, body.name)
    except ScheduleError as exc:
        raise http_error(exc) from exc
    return ScheduleQuery(db).describe(schedule)


@router.patch("/{schedule_id}", response_model=ScheduleOut)
def update_schedule(schedule_id: str, masjid_id: str, body: ScheduleUpdateIn, db: Session = Depends(get_db)):
    slides = None
    # An explicit [] clears the slide list; an absent field leaves it alone.
    if "slides" in body.model_fields_set and body.slides is not None:
        slides = [SlideRef(id=slide.id, order=slide.order) for slide in body.slides]
    try:
        schedule = ScheduleService(db).update(
            _masjid_id(masjid_id),
            schedule_id,
            name=body.name,
            description=body.description,
            is_active=body.is_active,
            slides=slides,
            clear_description="description" in body.model_fields_set,
        )
    except ScheduleError as exc:
        raise http_error(exc) from exc
    return ScheduleQuery(db).describe(schedule)


@router.patch("/{schedule_id}/active", response_model=ScheduleOut)
def toggle_schedule_active(schedule_id: str, masjid_id: str, body: ToggleActiveIn, db: Session = Depends(get_db)):
    try:
        schedule = ScheduleService(db).toggle_active(_masjid_id(masjid_id), schedule_id, body.is_active)
    except ScheduleError as exc:
        raise http_error(exc) from exc
    return ScheduleQuery(db).describe(schedule)


@router.patch("/{schedule_id}/set-default", response_model=ScheduleOut)
def set_default_schedule(schedule_id: str, masjid_id: str, db: Session = Depends(get_db)):
    try:
        schedule = ScheduleService(db).set_default(_masjid_id(masjid_id), schedule_id)
    except ScheduleError as exc:
        raise http_error(exc) from exc
    return ScheduleQuery(db).describe(schedule)


@router.delete("/{schedule_id}", status_code=204)
def delete_schedule(schedule_id: str, masjid_id: str, db: Session = Depends(get_db)):
    try:
        ScheduleService(db).delete(_masjid_id(masjid_id), schedule_id)
    except ScheduleError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)
