"""
Ranking policies: the declarative description of one scoring system.

A policy document (stored ranking system, preset or inline JSON) is validated
once by ``RankingPolicy.from_document``. Missing fields fall back to defaults;
values that cannot be interpreted raise ``RankingPolicyError``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple


class RankingPolicyError(ValueError):
    pass


class GroupBy(str, Enum):
    GENDER = "gender"
    CATEGORY = "category"
    CATEGORY_GENDER = "category_gender"


class EntityMode(str, Enum):
    CLUB = "club"
    ATHLETE = "athlete"


class ScoringMode(str, Enum):
    POINTS = "points"
    MEDALS = "medals"


class JourneyMode(str, Enum):
    ALL = "all"
    FINAL_ONLY = "final_only"
    BEST_N = "best_n"


class BoatClassFilter(str, Enum):
    ALL = "all"
    SKIFF_ONLY = "skiff_only"


class TieBreaker(str, Enum):
    MORE_FIRST_PLACES = "more_first_places"
    MORE_SECOND_PLACES = "more_second_places"
    TOTAL_TIME = "total_time"
    BEST_TIME = "best_time"
    ALPHABETICAL = "alphabetical"


DEFAULT_POINT_TABLE: Mapping[int, int] = MappingProxyType(
    {1: 20, 2: 12, 3: 8, 4: 6, 5: 4, 6: 3, 7: 2, 8: 1}
)
DEFAULT_MAX_SCORING_POSITION = 8
DEFAULT_TIE_BREAKERS: Tuple[TieBreaker, ...] = (
    TieBreaker.MORE_FIRST_PLACES,
    TieBreaker.MORE_SECOND_PLACES,
    TieBreaker.TOTAL_TIME,
)


def _lookup(doc: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = doc.get(key)
        if value is not None:
            return value
    return None


def _enum_value(enum_cls: type[Enum], raw: Any, label: str, default: Enum) -> Any:
    if raw is None or raw == "":
        return default
    return _parse_enum(enum_cls, raw, label)


def _parse_enum(enum_cls: type[Enum], raw: Any, label: str) -> Any:
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(str(raw).strip().lower())
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise RankingPolicyError(f"Unknown {label} '{raw}' (expected one of: {allowed})") from None


def _int_value(raw: Any, label: str) -> int:
    if isinstance(raw, bool):
        raise RankingPolicyError(f"Invalid {label} {raw!r}")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise RankingPolicyError(f"Invalid {label} {raw!r}") from None


def _bool_value(raw: Any, label: str, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw.strip().lower() in ("true", "false"):
        return raw.strip().lower() == "true"
    raise RankingPolicyError(f"Invalid {label} {raw!r} (expected true or false)")


def _parse_point_table(raw: Any) -> Dict[int, int]:
    """
    Accept either ``[{"position": 1, "points": 20}, ...]`` or ``{1: 20, ...}``.
    """
    table: Dict[int, int] = {}
    if isinstance(raw, Mapping):
        items: Iterable[Tuple[Any, Any]] = raw.items()
    elif isinstance(raw, (list, tuple)):
        items = []
        for entry in raw:
            if not isinstance(entry, Mapping):
                raise RankingPolicyError(f"Invalid point table entry {entry!r} (expected position and points)")
            items.append((entry.get("position"), entry.get("points")))
    else:
        raise RankingPolicyError(f"Invalid point table {raw!r}")
    for position, points in items:
        pos = _int_value(position, "point table position")
        pts = _int_value(points, "point table points")
        if pos < 1 or pts < 0:
            raise RankingPolicyError(f"Invalid point table entry {pos}: {pts}")
        table[pos] = pts
    return table


def _parse_tie_breakers(raw: Any) -> Tuple[TieBreaker, ...]:
    if not raw:
        return DEFAULT_TIE_BREAKERS
    if isinstance(raw, str):
        raw = [raw]
    elif not isinstance(raw, (list, tuple)):
        raise RankingPolicyError(f"Invalid tie-breakers {raw!r}")
    ordered: List[Tuple[int, Any]] = []
    for idx, item in enumerate(raw):
        if isinstance(item, Mapping):
            priority = item.get("priority")
            rank = _int_value(priority, "tie-breaker priority") if priority else idx + 1
            ordered.append((rank, item.get("method")))
        else:
            ordered.append((idx + 1, item))
    # Stable on equal priorities.
    ordered.sort(key=lambda pair: pair[0])
    return tuple(_parse_enum(TieBreaker, method, "tie-breaker") for _, method in ordered if method)


def resolve_point_table(custom: Optional[Mapping[int, int]], max_scoring_position: int) -> Mapping[int, int]:
    """
    Build the lookup table used for every scoring call of one policy.

    A non-empty custom table replaces the default one; positions beyond
    ``max_scoring_position`` never score.
    """
    base = dict(custom) if custom else dict(DEFAULT_POINT_TABLE)
    return MappingProxyType({pos: pts for pos, pts in base.items() if pos <= max_scoring_position})


@dataclass(frozen=True)
class RankingPolicy:
    group_by: GroupBy = GroupBy.CATEGORY_GENDER
    entity_mode: EntityMode = EntityMode.CLUB
    scoring_mode: ScoringMode = ScoringMode.POINTS
    journey_mode: JourneyMode = JourneyMode.ALL
    best_n_count: Optional[int] = None
    boat_class_filter: BoatClassFilter = BoatClassFilter.ALL
    point_table: Mapping[int, int] = field(default_factory=lambda: DEFAULT_POINT_TABLE)
    max_scoring_position: int = DEFAULT_MAX_SCORING_POSITION
    dnf_gets_points_if_few_finishers: bool = True
    tie_breakers: Tuple[TieBreaker, ...] = DEFAULT_TIE_BREAKERS
    allowed_boat_class_ids: frozenset = frozenset()
    include_masters: bool = True

    def __post_init__(self) -> None:
        if self.entity_mode is EntityMode.ATHLETE and self.boat_class_filter is not BoatClassFilter.SKIFF_ONLY:
            raise RankingPolicyError(
                "Athlete attribution requires the skiff_only boat class filter"
            )
        if self.journey_mode is JourneyMode.BEST_N and (self.best_n_count is None or self.best_n_count < 1):
            raise RankingPolicyError("journey_mode 'best_n' requires a positive best_n_count")
        if self.max_scoring_position < 1:
            raise RankingPolicyError("max_scoring_position must be positive")

    @classmethod
    def from_document(cls, doc: Optional[Mapping[str, Any]]) -> "RankingPolicy":
        """
        Build a policy from a stored/preset/inline document.

        Both ``snake_case`` and ``camelCase`` keys are understood.
        """
        if not doc:
            return cls()

        raw_max = _lookup(doc, "max_scoring_position", "maxScoringPosition")
        max_scoring = (
            _int_value(raw_max, "max_scoring_position") if raw_max is not None else DEFAULT_MAX_SCORING_POSITION
        )
        if max_scoring < 0:
            raise RankingPolicyError("max_scoring_position must not be negative")

        raw_table = _lookup(doc, "custom_point_table", "customPointTable")
        custom = _parse_point_table(raw_table) if raw_table else None
        if max_scoring == 0:
            # 0 means "no cap": the table itself decides.
            max_scoring = max((custom or DEFAULT_POINT_TABLE).keys(), default=DEFAULT_MAX_SCORING_POSITION)

        raw_best_n = _lookup(doc, "best_n_count", "bestNCount")
        dnf_flag = _lookup(doc, "dnf_gets_points_if_few_finishers", "dnfGetsPointsIfFewFinishers")
        include_masters = _lookup(doc, "include_masters", "includeMasters")
        allowed = _lookup(doc, "allowed_boat_class_ids", "allowedBoatClasses") or []
        if not isinstance(allowed, (list, tuple, set, frozenset)):
            raise RankingPolicyError(f"Invalid allowed_boat_class_ids {allowed!r}")

        return cls(
            group_by=_enum_value(GroupBy, _lookup(doc, "group_by", "groupBy"), "group_by", GroupBy.CATEGORY_GENDER),
            entity_mode=_enum_value(
                EntityMode, _lookup(doc, "entity_mode", "entityMode"), "entity_mode", EntityMode.CLUB
            ),
            scoring_mode=_enum_value(
                ScoringMode, _lookup(doc, "scoring_mode", "scoringMode"), "scoring_mode", ScoringMode.POINTS
            ),
            journey_mode=_enum_value(
                JourneyMode, _lookup(doc, "journey_mode", "journeyMode"), "journey_mode", JourneyMode.ALL
            ),
            best_n_count=_int_value(raw_best_n, "best_n_count") if raw_best_n is not None else None,
            boat_class_filter=_enum_value(
                BoatClassFilter,
                _lookup(doc, "boat_class_filter", "boatClassFilter"),
                "boat_class_filter",
                BoatClassFilter.ALL,
            ),
            point_table=resolve_point_table(custom, max_scoring),
            max_scoring_position=max_scoring,
            dnf_gets_points_if_few_finishers=_bool_value(dnf_flag, "dnf_gets_points_if_few_finishers", True),
            tie_breakers=_parse_tie_breakers(_lookup(doc, "tie_breakers", "tieBreakers")),
            allowed_boat_class_ids=frozenset(str(bc) for bc in allowed),
            include_masters=_bool_value(include_masters, "include_masters", True),
        )

    def points_for_position(self, position: Optional[int]) -> int:
        if not position or position < 1:
            return 0
        return self.point_table.get(position, 0)

    def describe(self) -> Dict[str, Any]:
        return {
            "group_by": self.group_by.value,
            "entity_mode": self.entity_mode.value,
            "scoring_mode": self.scoring_mode.value,
            "journey_mode": self.journey_mode.value,
            "best_n_count": self.best_n_count,
            "boat_class_filter": self.boat_class_filter.value,
            "point_table": {str(pos): pts for pos, pts in sorted(self.point_table.items())},
            "max_scoring_position": self.max_scoring_position,
            "dnf_gets_points_if_few_finishers": self.dnf_gets_points_if_few_finishers,
            "tie_breakers": [tb.value for tb in self.tie_breakers],
            "allowed_boat_class_ids": sorted(self.allowed_boat_class_ids),
            "include_masters": self.include_masters,
        }


_STANDARD_TIE_BREAKERS = [
    {"priority": 1, "method": "more_first_places"},
    {"priority": 2, "method": "more_second_places"},
    {"priority": 3, "method": "total_time"},
    {"priority": 4, "method": "alphabetical"},
]


PRESETS: Mapping[str, Mapping[str, Any]] = MappingProxyType(
    {
        # Men's Cup / Women's Cup: every age category of one gender combined.
        "CLUB_GENDER": {
            "code": "CLUB_GENDER",
            "names": {"en": "Club Cup by Gender", "fr": "Coupe des Clubs par Genre", "ar": "كأس الأندية حسب الجنس"},
            "description": "All categories of one gender combined, points go to clubs",
            "discipline": None,
            "group_by": "gender",
            "entity_mode": "club",
            "scoring_mode": "points",
            "journey_mode": "all",
            "boat_class_filter": "all",
            "max_scoring_position": 8,
            "dnf_gets_points_if_few_finishers": True,
            "tie_breakers": _STANDARD_TIE_BREAKERS,
            "include_masters": False,
            "sort_order": 1,
        },
        "CLUB_CATEGORY_GENDER": {
            "code": "CLUB_CATEGORY_GENDER",
            "names": {
                "en": "Club Championship by Category",
                "fr": "Championnat des Clubs par Catégorie",
                "ar": "بطولة الأندية حسب الفئة",
            },
            "description": "Each category and gender ranked separately, points go to clubs",
            "discipline": None,
            "group_by": "category_gender",
            "entity_mode": "club",
            "scoring_mode": "points",
            "journey_mode": "all",
            "boat_class_filter": "all",
            "max_scoring_position": 8,
            "dnf_gets_points_if_few_finishers": True,
            "tie_breakers": _STANDARD_TIE_BREAKERS,
            "include_masters": True,
            "sort_order": 2,
        },
        "ATHLETE_CATEGORY_SKIFF": {
            "code": "ATHLETE_CATEGORY_SKIFF",
            "names": {
                "en": "Skiff Athlete Championship",
                "fr": "Championnat des Athlètes en Skiff",
                "ar": "بطولة الرياضيين في القوارب الفردية",
            },
            "description": "Single sculls only, points go to athletes, ranked per category and gender",
            "discipline": None,
            "group_by": "category_gender",
            "entity_mode": "athlete",
            "scoring_mode": "points",
            "journey_mode": "all",
            "boat_class_filter": "skiff_only",
            "max_scoring_position": 8,
            "dnf_gets_points_if_few_finishers": True,
            "tie_breakers": [
                {"priority": 1, "method": "more_first_places"},
                {"priority": 2, "method": "best_time"},
                {"priority": 3, "method": "alphabetical"},
            ],
            "include_masters": True,
            "sort_order": 3,
        },
        "CLUB_CATEGORY": {
            "code": "CLUB_CATEGORY",
            "names": {"en": "Club Cup by Category", "fr": "Coupe des Clubs par Catégorie", "ar": "كأس الأندية حسب الفئة"},
            "description": "Each age category ranked separately with both genders combined, points go to clubs",
            "discipline": None,
            "group_by": "category",
            "entity_mode": "club",
            "scoring_mode": "points",
            "journey_mode": "all",
            "boat_class_filter": "all",
            "max_scoring_position": 8,
            "dnf_gets_points_if_few_finishers": True,
            "tie_breakers": _STANDARD_TIE_BREAKERS,
            "include_masters": True,
            "sort_order": 4,
        },
        "BEACH_MEDALS_CATEGORY": {
            "code": "BEACH_MEDALS_CATEGORY",
            "names": {"en": "Beach Medal Table", "fr": "Tableau des Médailles Beach", "ar": "جدول ميداليات الشاطئ"},
            "description": "Olympic-style medal table per age category for beach events, clubs ranked",
            "discipline": "beach",
            "group_by": "category",
            "entity_mode": "club",
            "scoring_mode": "medals",
            "journey_mode": "all",
            "boat_class_filter": "all",
            "max_scoring_position": 8,
            "dnf_gets_points_if_few_finishers": True,
            "tie_breakers": [],
            "include_masters": True,
            "sort_order": 5,
        },
    }
)


def get_preset(code: str) -> Optional[Mapping[str, Any]]:
    return PRESETS.get(code.strip().upper())


def presets_for_discipline(discipline: Optional[str] = None) -> List[Mapping[str, Any]]:
    presets = sorted(PRESETS.values(), key=lambda p: p["sort_order"])
    if not discipline:
        return presets
    return [p for p in presets if p["discipline"] in (None, discipline)]
