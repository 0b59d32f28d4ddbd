from typing import Optional

from sqlalchemy import TEXT, Integer, String
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(AsyncAttrs, DeclarativeBase):
    """SQLAlchemy declarative base for all ORM models with async support."""

    pass


class JobRow(Base):
    """
    Persisted form of a cron job.

    Timestamps are stored as epoch seconds and the config as a JSON object so the
    file stays readable by any SQLite client. The scheduler handle is never stored.
    """

    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(TEXT)
    type: Mapped[Optional[str]] = mapped_column(String(32))
    schedule: Mapped[Optional[str]] = mapped_column(TEXT)
    schedule_desc: Mapped[Optional[str]] = mapped_column(TEXT)
    enabled: Mapped[Optional[int]] = mapped_column(Integer)
    config: Mapped[Optional[str]] = mapped_column(TEXT)
    last_run: Mapped[Optional[int]] = mapped_column(Integer)
    next_run: Mapped[Optional[int]] = mapped_column(Integer)
