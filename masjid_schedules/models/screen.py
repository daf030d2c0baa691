import uuid
from sqlalchemy import Column, DateTime, String
from masjid_schedules.db import Base


class Screen(Base):
    __tablename__ = "screen"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    masjid_id = Column(String(36), nullable=False, index=True)
    name = Column(String, nullable=False)
    orientation = Column(String, default="landscape")
    status = Column(String, default="offline")
    last_seen = Column(DateTime, nullable=True)
    # Null means "play the masjid default". May point at a deleted schedule.
    schedule_id = Column(String(36), nullable=True)
