from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from regatta_rankings.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


race_lane_crew = Table(
    "race_lane_crew",
    Base.metadata,
    Column("lane_id", ForeignKey("race_lanes.id"), primary_key=True),
    Column("athlete_id", ForeignKey("athletes.id"), primary_key=True),
    Column("seat", Integer, nullable=False, default=1),
)


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    abbreviation: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    gender: Mapped[str] = mapped_column(String(16), default="mixed", nullable=False)  # men, women, mixed
    min_age: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    titles: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)  # {en, fr, ar}


class BoatClass(Base):
    __tablename__ = "boat_classes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(16), nullable=False)
    discipline: Mapped[str] = mapped_column(String(16), default="classic", nullable=False)
    crew_size: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    __table_args__ = (UniqueConstraint("discipline", "code", name="uq_boat_class_code_per_discipline"),)


class Club(Base):
    __tablename__ = "clubs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)


class Athlete(Base):
    __tablename__ = "athletes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(64), nullable=False)
    last_name: Mapped[str] = mapped_column(String(64), nullable=False)
    club_id: Mapped[Optional[int]] = mapped_column(ForeignKey("clubs.id"), nullable=True, index=True)

    club: Mapped[Optional[Club]] = relationship("Club")


class Competition(Base):
    __tablename__ = "competitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    names: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    discipline: Mapped[str] = mapped_column(
        String(16), default="classic", nullable=False
    )  # classic, coastal, beach, indoor
    season: Mapped[int] = mapped_column(Integer, nullable=False)
    allowed_boat_class_ids: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    stages: Mapped[list["CompetitionStage"]] = relationship(
        "CompetitionStage",
        back_populates="competition",
        cascade="all, delete-orphan",
        order_by="CompetitionStage.index",
    )
    races: Mapped[list["Race"]] = relationship(
        "Race", back_populates="competition", cascade="all, delete-orphan"
    )


class CompetitionStage(Base):
    __tablename__ = "competition_stages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    competition_id: Mapped[int] = mapped_column(ForeignKey("competitions.id"), nullable=False, index=True)
    index: Mapped[int] = mapped_column(Integer, nullable=False)  # journey index, 1-based
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    stage_date: Mapped[Optional[date]] = mapped_column("date", Date, nullable=True)
    is_final_day: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    competition: Mapped[Competition] = relationship("Competition", back_populates="stages")

    __table_args__ = (UniqueConstraint("competition_id", "index", name="uq_stage_index"),)


class Race(Base):
    __tablename__ = "races"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    competition_id: Mapped[int] = mapped_column(ForeignKey("competitions.id"), nullable=False, index=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"), nullable=False, index=True)
    boat_class_id: Mapped[Optional[int]] = mapped_column(ForeignKey("boat_classes.id"), nullable=True, index=True)
    journey_index: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    race_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(
        String(16), default="scheduled", nullable=False, index=True
    )  # scheduled, in_progress, completed, cancelled

    competition: Mapped[Competition] = relationship("Competition", back_populates="races")
    category: Mapped[Category] = relationship("Category")
    boat_class: Mapped[Optional[BoatClass]] = relationship("BoatClass")
    lanes: Mapped[list["RaceLane"]] = relationship(
        "RaceLane", back_populates="race", cascade="all, delete-orphan", order_by="RaceLane.lane"
    )


class RaceLane(Base):
    __tablename__ = "race_lanes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    race_id: Mapped[int] = mapped_column(ForeignKey("races.id"), nullable=False, index=True)
    lane: Mapped[int] = mapped_column(Integer, nullable=False)
    athlete_id: Mapped[Optional[int]] = mapped_column(ForeignKey("athletes.id"), nullable=True)
    club_id: Mapped[Optional[int]] = mapped_column(ForeignKey("clubs.id"), nullable=True)
    result_status: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)  # ok, dns, dnf, dsq, abs
    finish_position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    elapsed_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    result_notes: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)

    race: Mapped[Race] = relationship("Race", back_populates="lanes")
    athlete: Mapped[Optional[Athlete]] = relationship("Athlete")
    club: Mapped[Optional[Club]] = relationship("Club")
    crew: Mapped[list[Athlete]] = relationship(
        "Athlete", secondary=race_lane_crew, order_by=race_lane_crew.c.seat
    )

    __table_args__ = (UniqueConstraint("race_id", "lane", name="uq_race_lane"),)


class RankingSystem(Base):
    __tablename__ = "ranking_systems"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    names: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    discipline: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)  # None = every discipline

    group_by: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    entity_mode: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    scoring_mode: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    journey_mode: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    best_n_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    boat_class_filter: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    allowed_boat_class_ids: Mapped[list[Any]] = mapped_column(JSON, default=list, nullable=False)
    custom_point_table: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    max_scoring_position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    dnf_gets_points_if_few_finishers: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    tie_breakers: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    include_masters: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    is_preset: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
