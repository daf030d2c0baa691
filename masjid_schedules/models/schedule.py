import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)

from masjid_schedules.db import Base


class ContentSchedule(Base):
    __tablename__ = "content_schedule"
    __table_args__ = (
        # At most one default per masjid, enforced by the database as well.
        Index(
            "ux_content_schedule_default",
            "masjid_id",
            unique=True,
            sqlite_where=text("is_default = 1"),
            postgresql_where=text("is_default = true"),
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    masjid_id = Column(String(36), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ScheduleItem(Base):
    __tablename__ = "content_schedule_item"
    __table_args__ = (
        UniqueConstraint("schedule_id", "order", name="ux_content_schedule_item_order"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    schedule_id = Column(String(36), ForeignKey("content_schedule.id"), nullable=False, index=True)
    # Weak reference: content items may be deleted independently.
    content_item_id = Column(String(36), nullable=False)
    order = Column(Integer, nullable=False)
