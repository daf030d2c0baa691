from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from masjid_schedules.api.schedule import _masjid_id, http_error
from masjid_schedules.db import get_db
from masjid_schedules.models.screen import Screen
from masjid_schedules.schemas.screen import AssignScheduleIn, ScreenContentOut, ScreenCreateIn, ScreenOut
from masjid_schedules.services.assignment import ScreenAssignmentResolver
from masjid_schedules.services.errors import NotFoundError, ScheduleError
from masjid_schedules.services.schedule_repository import ScheduleRepository

router = APIRouter(prefix="/screens", tags=["screens"])

ALLOWED_ORIENTATIONS = {"landscape", "portrait"}


def _validate_orientation(value: str) -> str:
    orientation = (value or "landscape").strip().lower()
    if orientation not in ALLOWED_ORIENTATIONS:
        raise HTTPException(
            status_code=400,
            detail={"code": "VALIDATION", "message": "Invalid orientation. Use landscape or portrait."},
        )
    return orientation


@router.post("", response_model=ScreenOut, status_code=201)
def create_screen(masjid_id: str, body: ScreenCreateIn, db: Session = Depends(get_db)):
    masjid_id = _masjid_id(masjid_id)
    orientation = _validate_orientation(body.orientation)
    schedule_id = (body.schedule_id or "").strip() or None
    if schedule_id is not None and ScheduleRepository(db).get(masjid_id, schedule_id) is None:
        raise http_error(NotFoundError("Content schedule not found"))
    screen = Screen(
        masjid_id=masjid_id,
        name=body.name.strip(),
        orientation=orientation,
        schedule_id=schedule_id,
    )
    db.add(screen)
    db.commit()
    db.refresh(screen)
    return screen


@router.get("", response_model=list[ScreenOut])
def list_screens(masjid_id: str, db: Session = Depends(get_db)):
    masjid_id = _masjid_id(masjid_id)
    return db.query(Screen).filter(Screen.masjid_id == masjid_id).order_by(Screen.name.asc()).all()


@router.post("/{screen_id}/assign-schedule", response_model=ScreenOut)
def assign_schedule(screen_id: str, masjid_id: str, body: AssignScheduleIn, db: Session = Depends(get_db)):
    try:
        return ScreenAssignmentResolver(db).assign(_masjid_id(masjid_id), screen_id, body.schedule_id)
    except ScheduleError as exc:
        raise http_error(exc) from exc


@router.get("/{screen_id}/content", response_model=ScreenContentOut)
def screen_content(screen_id: str, db: Session = Depends(get_db)):
    resolver = ScreenAssignmentResolver(db)
    try:
        payload = resolver.content_for_screen(screen_id)
    except ScheduleError as exc:
        raise http_error(exc) from exc
    screen = db.query(Screen).get(screen_id)
    screen.last_seen = datetime.utcnow()
    screen.status = "online"
    db.commit()
    return payload


@router.delete("/{screen_id}")
def delete_screen(screen_id: str, masjid_id: str, db: Session = Depends(get_db)):
    masjid_id = _masjid_id(masjid_id)
    screen = db.query(Screen).filter(Screen.id == screen_id, Screen.masjid_id == masjid_id).first()
    if not screen:
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": "Screen not found"})
    db.delete(screen)
    db.commit()
    return {"ok": True}
