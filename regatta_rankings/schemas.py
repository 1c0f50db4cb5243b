from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from regatta_rankings.policy import BoatClassFilter, EntityMode, GroupBy, JourneyMode, ScoringMode, TieBreaker


class LocalizedNames(BaseModel):
    en: str = Field(min_length=1)
    fr: str = Field(min_length=1)
    ar: str = Field(min_length=1)


class PointTableEntry(BaseModel):
    position: int = Field(ge=1)
    points: int = Field(ge=0)


class TieBreakerEntry(BaseModel):
    priority: int = Field(ge=1)
    method: TieBreaker


class RankingSystemCreate(BaseModel):
    code: str = Field(min_length=1, max_length=32)
    names: LocalizedNames
    description: Optional[str] = Field(default=None, max_length=512)
    discipline: Optional[str] = None

    group_by: GroupBy = GroupBy.CATEGORY_GENDER
    entity_mode: EntityMode = EntityMode.CLUB
    scoring_mode: ScoringMode = ScoringMode.POINTS
    journey_mode: JourneyMode = JourneyMode.ALL
    best_n_count: Optional[int] = Field(default=None, ge=1)
    boat_class_filter: BoatClassFilter = BoatClassFilter.ALL
    allowed_boat_class_ids: list[int] = Field(default_factory=list)
    custom_point_table: list[PointTableEntry] = Field(default_factory=list)
    max_scoring_position: int = Field(default=8, ge=0)
    dnf_gets_points_if_few_finishers: bool = True
    tie_breakers: list[TieBreakerEntry] = Field(default_factory=list)
    include_masters: bool = True

    is_active: bool = True
    sort_order: int = 0


class RankingSystemUpdate(BaseModel):
    names: Optional[LocalizedNames] = None
    description: Optional[str] = Field(default=None, max_length=512)
    discipline: Optional[str] = None

    group_by: Optional[GroupBy] = None
    entity_mode: Optional[EntityMode] = None
    scoring_mode: Optional[ScoringMode] = None
    journey_mode: Optional[JourneyMode] = None
    best_n_count: Optional[int] = Field(default=None, ge=1)
    boat_class_filter: Optional[BoatClassFilter] = None
    allowed_boat_class_ids: Optional[list[int]] = None
    custom_point_table: Optional[list[PointTableEntry]] = None
    max_scoring_position: Optional[int] = Field(default=None, ge=0)
    dnf_gets_points_if_few_finishers: Optional[bool] = None
    tie_breakers: Optional[list[TieBreakerEntry]] = None
    include_masters: Optional[bool] = None

    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class RankingPreviewRequest(BaseModel):
    """
    Inline snapshot: competition and races may carry ids or expanded records
    for clubs, athletes, categories and boat classes.
    """

    competition: dict[str, Any]
    races: list[dict[str, Any]] = Field(default_factory=list)
    policy: Optional[dict[str, Any]] = None
    include_masters: Optional[bool] = None
    summary: bool = False
