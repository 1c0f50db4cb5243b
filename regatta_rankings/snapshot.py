"""
Read-only snapshots of competitions and races.

References to clubs, athletes, categories and boat classes reach the engine
either as plain ids or as expanded records. Everything is normalised here into
a ``Ref`` (plain id + optional denormalised fields) so the ranking code never
has to ask which one it got.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from regatta_rankings import models


RESULT_STATUSES = ("ok", "dns", "dnf", "dsq", "abs")


@dataclass(frozen=True)
class Ref:
    id: str
    snapshot: Mapping[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        name = self.snapshot.get("name")
        if name:
            return str(name)
        first = self.snapshot.get("first_name") or self.snapshot.get("firstName") or ""
        last = self.snapshot.get("last_name") or self.snapshot.get("lastName") or ""
        return f"{first} {last}".strip()

    def as_dict(self) -> Dict[str, Any]:
        return {"id": self.id, **{k: v for k, v in self.snapshot.items() if k not in ("id", "_id")}}


def normalize_ref(value: Any) -> Optional[Ref]:
    """
    Turn an id, an expanded record or ``None`` into a ``Ref``.
    """
    if value is None or value == "":
        return None
    if isinstance(value, Ref):
        return value
    if isinstance(value, Mapping):
        raw_id = value.get("id", value.get("_id"))
        if raw_id is None:
            return None
        return Ref(id=str(raw_id), snapshot=dict(value))
    return Ref(id=str(value))


@dataclass(frozen=True)
class LaneResult:
    status: str
    finish_position: Optional[int] = None
    elapsed_ms: Optional[int] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class Lane:
    lane: int
    club: Optional[Ref] = None
    crew: Tuple[Ref, ...] = ()
    result: Optional[LaneResult] = None


@dataclass(frozen=True)
class CategoryInfo:
    id: str
    abbreviation: Optional[str] = None
    gender: Optional[str] = None
    titles: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BoatClassInfo:
    id: str
    code: Optional[str] = None
    crew_size: Optional[int] = None

    @property
    def is_skiff(self) -> bool:
        return self.crew_size == 1


@dataclass(frozen=True)
class Race:
    id: str
    category: Optional[CategoryInfo]
    boat_class: Optional[BoatClassInfo]
    journey_index: Optional[int]
    lanes: Tuple[Lane, ...] = ()
    race_number: Optional[int] = None
    status: str = "completed"


@dataclass(frozen=True)
class Stage:
    index: int
    name: Optional[str] = None
    date: Optional[date] = None
    is_final_day: bool = False


@dataclass(frozen=True)
class CompetitionInfo:
    id: str
    code: Optional[str] = None
    names: Mapping[str, Any] = field(default_factory=dict)
    discipline: Optional[str] = None
    season: Optional[int] = None
    stages: Tuple[Stage, ...] = ()
    allowed_boat_class_ids: Tuple[str, ...] = ()

    @property
    def final_stage_index(self) -> Optional[int]:
        for stage in self.stages:
            if stage.is_final_day:
                return stage.index
        return None


def _opt_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _result(status: Any, finish_position: Any, elapsed_ms: Any, notes: Any = None) -> Optional[LaneResult]:
    if not status:
        return None
    normalized = str(status).strip().lower()
    if normalized not in RESULT_STATUSES:
        return None
    return LaneResult(
        status=normalized,
        finish_position=_opt_int(finish_position),
        elapsed_ms=_opt_int(elapsed_ms),
        notes=notes,
    )


def _crew(athlete: Optional[Ref], crew: Iterable[Optional[Ref]]) -> Tuple[Ref, ...]:
    if athlete is not None:
        return (athlete,)
    return tuple(member for member in crew if member is not None)


# --- ORM rows -----------------------------------------------------------


def _club_ref(club: Optional[models.Club]) -> Optional[Ref]:
    if club is None:
        return None
    return Ref(id=str(club.id), snapshot={"name": club.name, "code": club.code})


def _athlete_ref(athlete: Optional[models.Athlete]) -> Optional[Ref]:
    if athlete is None:
        return None
    return Ref(
        id=str(athlete.id),
        snapshot={
            "first_name": athlete.first_name,
            "last_name": athlete.last_name,
            "club_id": str(athlete.club_id) if athlete.club_id is not None else None,
        },
    )


def race_from_row(race: models.Race) -> Race:
    category = race.category
    boat_class = race.boat_class
    lanes = []
    for lane in race.lanes:
        lanes.append(
            Lane(
                lane=lane.lane,
                club=_club_ref(lane.club),
                crew=_crew(_athlete_ref(lane.athlete), (_athlete_ref(a) for a in lane.crew)),
                result=_result(lane.result_status, lane.finish_position, lane.elapsed_ms, lane.result_notes),
            )
        )
    return Race(
        id=str(race.id),
        category=CategoryInfo(
            id=str(category.id),
            abbreviation=category.abbreviation,
            gender=category.gender,
            titles=dict(category.titles or {}),
        )
        if category is not None
        else None,
        boat_class=BoatClassInfo(id=str(boat_class.id), code=boat_class.code, crew_size=boat_class.crew_size)
        if boat_class is not None
        else None,
        journey_index=race.journey_index,
        lanes=tuple(lanes),
        race_number=race.race_number,
        status=race.status,
    )


def competition_from_row(competition: models.Competition) -> CompetitionInfo:
    return CompetitionInfo(
        id=str(competition.id),
        code=competition.code,
        names=dict(competition.names or {}),
        discipline=competition.discipline,
        season=competition.season,
        stages=tuple(
            Stage(index=s.index, name=s.name, date=s.stage_date, is_final_day=s.is_final_day)
            for s in sorted(competition.stages, key=lambda s: s.index)
        ),
        allowed_boat_class_ids=tuple(str(bc) for bc in (competition.allowed_boat_class_ids or [])),
    )


# --- JSON documents -----------------------------------------------------


def _category_from_document(value: Any) -> Optional[CategoryInfo]:
    ref = normalize_ref(value)
    if ref is None:
        return None
    snap = ref.snapshot
    return CategoryInfo(
        id=ref.id,
        abbreviation=snap.get("abbreviation"),
        gender=snap.get("gender"),
        titles=dict(snap.get("titles") or {}),
    )


def _boat_class_from_document(value: Any) -> Optional[BoatClassInfo]:
    ref = normalize_ref(value)
    if ref is None:
        return None
    snap = ref.snapshot
    crew_size = snap.get("crew_size", snap.get("crewSize"))
    return BoatClassInfo(id=ref.id, code=snap.get("code"), crew_size=_opt_int(crew_size))


def race_from_document(doc: Mapping[str, Any]) -> Race:
    lanes: List[Lane] = []
    for lane_doc in doc.get("lanes") or []:
        result_doc = lane_doc.get("result") or {}
        lanes.append(
            Lane(
                lane=int(lane_doc.get("lane") or 0),
                club=normalize_ref(lane_doc.get("club")),
                crew=_crew(
                    normalize_ref(lane_doc.get("athlete")),
                    (normalize_ref(member) for member in lane_doc.get("crew") or []),
                ),
                result=_result(
                    result_doc.get("status"),
                    result_doc.get("finish_position", result_doc.get("finishPosition")),
                    result_doc.get("elapsed_ms", result_doc.get("elapsedMs")),
                    result_doc.get("notes"),
                ),
            )
        )
    raw_id = doc.get("id", doc.get("_id"))
    return Race(
        id=str(raw_id) if raw_id is not None else "",
        category=_category_from_document(doc.get("category")),
        boat_class=_boat_class_from_document(doc.get("boat_class", doc.get("boatClass"))),
        journey_index=_opt_int(doc.get("journey_index", doc.get("journeyIndex"))),
        lanes=tuple(lanes),
        race_number=_opt_int(doc.get("race_number", doc.get("raceNumber"))),
        status=str(doc.get("status") or "completed"),
    )


def competition_from_document(doc: Mapping[str, Any]) -> CompetitionInfo:
    stages = []
    for position, stage in enumerate(doc.get("stages") or [], start=1):
        raw_date = stage.get("date")
        stages.append(
            Stage(
                index=int(stage.get("index") or position),
                name=stage.get("name"),
                date=date.fromisoformat(raw_date[:10]) if isinstance(raw_date, str) else raw_date,
                is_final_day=bool(stage.get("is_final_day", stage.get("isFinalDay", False))),
            )
        )
    allowed = doc.get("allowed_boat_class_ids", doc.get("allowedBoatClasses")) or []
    raw_id = doc.get("id", doc.get("_id"))
    return CompetitionInfo(
        id=str(raw_id) if raw_id is not None else "",
        code=doc.get("code"),
        names=dict(doc.get("names") or {}),
        discipline=doc.get("discipline"),
        season=_opt_int(doc.get("season")),
        stages=tuple(sorted(stages, key=lambda s: s.index)),
        allowed_boat_class_ids=tuple(str(normalize_ref(bc).id) for bc in allowed if normalize_ref(bc)),
    )
