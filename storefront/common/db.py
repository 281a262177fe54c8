from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    # SQLite drops tzinfo, so timestamps are stored as naive UTC everywhere
    return datetime.now(timezone.utc).replace(tzinfo=None)
