from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy import text
import os

DATABASE_URL = os.getenv("MASJID_DATABASE_URL", "sqlite:///./masjid_schedules.db")


def make_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_sqlite_schema(bind=None):
    """
    Lightweight runtime schema repair for SQLite.

    `Base.metadata.create_all()` won't add indexes to tables that already exist,
    and rows written before the default-schedule index existed may break the
    one-default-per-masjid rule. This keeps local/dev installs consistent
    without requiring Alembic.
    """
    bind = bind if bind is not None else engine
    if not str(bind.url).startswith("sqlite"):
        return

    with bind.begin() as conn:
        exists = conn.execute(
            text("SELECT name FROM sqlite_master WHERE type='table' AND name='content_schedule'")
        ).fetchone()
        if not exists:
            return

        # A default schedule is always active.
        conn.execute(text("UPDATE content_schedule SET is_active=1 WHERE is_default=1 AND is_active=0"))

        # Keep only the oldest default per masjid.
        rows = conn.execute(
            text(
                "SELECT id, masjid_id FROM content_schedule "
                "WHERE is_default=1 ORDER BY created_at ASC, rowid ASC"
            )
        ).fetchall()
        seen_masjids: set[str] = set()
        for schedule_id, masjid_id in rows:
            if masjid_id in seen_masjids:
                conn.execute(
                    text("UPDATE content_schedule SET is_default=0 WHERE id=:id"),
                    {"id": schedule_id},
                )
            else:
                seen_masjids.add(masjid_id)

        # Masjids that have schedules but lost their default get the oldest one promoted.
        orphaned = conn.execute(
            text(
                "SELECT DISTINCT masjid_id FROM content_schedule "
                "WHERE masjid_id NOT IN (SELECT masjid_id FROM content_schedule WHERE is_default=1)"
            )
        ).fetchall()
        for (masjid_id,) in orphaned:
            oldest = conn.execute(
                text(
                    "SELECT id FROM content_schedule WHERE masjid_id=:masjid_id "
                    "ORDER BY created_at ASC, rowid ASC LIMIT 1"
                ),
                {"masjid_id": masjid_id},
            ).fetchone()
            if oldest:
                conn.execute(
                    text("UPDATE content_schedule SET is_default=1, is_active=1 WHERE id=:id"),
                    {"id": oldest[0]},
                )

        conn.execute(
            text(
                "CREATE UNIQUE INDEX IF NOT EXISTS ux_content_schedule_default "
                "ON content_schedule(masjid_id) "
                "WHERE is_default = 1"
            )
        )
