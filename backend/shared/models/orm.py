"""
SQLAlchemy 2.0 ORM models for the fixture store.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    SmallInteger,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class FixtureORM(Base):
    __tablename__ = "fixtures"
    __table_args__ = (
        CheckConstraint("home_team <> away_team", name="ck_fixtures_distinct_teams"),
        CheckConstraint(
            "status <> 'finished' OR (home_score IS NOT NULL AND away_score IS NOT NULL)",
            name="ck_fixtures_finished_has_score",
        ),
        Index("ix_fixtures_date", "date"),
        Index("ix_fixtures_status", "status"),
        Index("ix_fixtures_matchweek", "matchweek"),
    )

    id: Mapped[str] = mapped_column(String(200), primary_key=True)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    home_team: Mapped[str] = mapped_column(String(100), nullable=False)
    away_team: Mapped[str] = mapped_column(String(100), nullable=False)
    home_score: Mapped[Optional[int]] = mapped_column(SmallInteger)
    away_score: Mapped[Optional[int]] = mapped_column(SmallInteger)
    matchweek: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    matchweek_source: Mapped[str] = mapped_column(String(20), nullable=False, default="elapsed")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="scheduled")
    status_rank: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    is_derby: Mapped[bool] = mapped_column(Boolean, default=False)
    competition: Mapped[Optional[str]] = mapped_column(String(100))
    competition_round: Mapped[Optional[str]] = mapped_column(String(100))
    season: Mapped[Optional[str]] = mapped_column(String(20))
    source: Mapped[Optional[str]] = mapped_column(String(50))
    source_priority: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class CacheMetadataORM(Base):
    __tablename__ = "cache_metadata"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    data_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
