import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String

from masjid_schedules.db import Base


class ContentType(str, Enum):
    ANNOUNCEMENT = "ANNOUNCEMENT"
    EVENT = "EVENT"
    VERSE_HADITH = "VERSE_HADITH"
    CUSTOM = "CUSTOM"
    ASMA_AL_HUSNA = "ASMA_AL_HUSNA"


class ContentItem(Base):
    # Owned by the content CRUD side of the console; schedules only reference it.
    __tablename__ = "content_item"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    masjid_id = Column(String(36), nullable=False, index=True)
    type = Column(String, nullable=False, default=ContentType.CUSTOM.value)
    title = Column(String, nullable=False)
    content = Column(JSON, nullable=True)
    duration = Column(Integer, nullable=False, default=30)
    is_active = Column(Boolean, nullable=False, default=True)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
