from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from regatta_rankings.policy import RankingPolicy, ScoringMode, TieBreaker
from regatta_rankings.snapshot import Lane, LaneResult


NON_SCORING_STATUSES = ("dns", "dnf", "dsq", "abs")
NO_TIME = math.inf


@dataclass(frozen=True)
class RaceContext:
    total_ok_finishers: int
    last_finisher_position: int
    dnf_count: int = 0
    total_participants: int = 0


@dataclass(frozen=True)
class LanePoints:
    points: int
    effective_position: Optional[int]
    applied_dnf_rule: bool
    status: Optional[str]


def analyze_race_context(lanes: Sequence[Lane]) -> RaceContext:
    """
    Count clean finishers of one race and find the last clean finish position.
    """
    total_ok = 0
    last_position = 0
    dnf_count = 0
    for lane in lanes:
        result = lane.result
        if result is None:
            continue
        if result.status == "ok" and result.finish_position:
            total_ok += 1
            last_position = max(last_position, result.finish_position)
        elif result.status == "dnf":
            dnf_count += 1
    return RaceContext(
        total_ok_finishers=total_ok,
        last_finisher_position=last_position,
        dnf_count=dnf_count,
        total_participants=len(lanes),
    )


def resolve_lane_points(
    result: Optional[LaneResult], context: RaceContext, policy: RankingPolicy
) -> LanePoints:
    """
    Points and effective position for one lane.

    ok: scored from the table at the finish position.
    dnf: when enabled and fewer boats finished cleanly than there are scoring
    places, placed one behind the last clean finisher and scored there.
    dns, dsq, abs, missing result: nothing.
    """
    if result is None:
        return LanePoints(points=0, effective_position=None, applied_dnf_rule=False, status=None)

    if result.status == "ok":
        position = result.finish_position if result.finish_position and result.finish_position > 0 else None
        return LanePoints(
            points=policy.points_for_position(position),
            effective_position=position,
            applied_dnf_rule=False,
            status=result.status,
        )

    if (
        result.status == "dnf"
        and policy.dnf_gets_points_if_few_finishers
        and context.total_ok_finishers < policy.max_scoring_position
    ):
        position = context.last_finisher_position + 1
        return LanePoints(
            points=policy.points_for_position(position),
            effective_position=position,
            applied_dnf_rule=True,
            status=result.status,
        )

    return LanePoints(points=0, effective_position=None, applied_dnf_rule=False, status=result.status)


def medal_tally(position_counts: Dict[int, int]) -> Dict[str, int]:
    gold = position_counts.get(1, 0)
    silver = position_counts.get(2, 0)
    bronze = position_counts.get(3, 0)
    return {"gold": gold, "silver": silver, "bronze": bronze, "total": gold + silver + bronze}


def _time_or_inf(value: Optional[float]) -> float:
    return value if value else NO_TIME


TIE_BREAK_KEYS: Dict[TieBreaker, Callable[[Any], Any]] = {
    TieBreaker.MORE_FIRST_PLACES: lambda e: -e.position_counts.get(1, 0),
    TieBreaker.MORE_SECOND_PLACES: lambda e: -e.position_counts.get(2, 0),
    TieBreaker.TOTAL_TIME: lambda e: _time_or_inf(e.total_time),
    TieBreaker.BEST_TIME: lambda e: _time_or_inf(e.best_time),
    TieBreaker.ALPHABETICAL: lambda e: e.display_name.casefold(),
}


def ordering_key(entry: Any, policy: RankingPolicy) -> Tuple[Any, ...]:
    """
    Sort key for one aggregated entry; smaller sorts first.

    The entry needs ``total_points``, ``total_time``, ``best_time``,
    ``position_counts`` and ``display_name``.
    """
    if policy.scoring_mode is ScoringMode.MEDALS:
        return (
            -entry.position_counts.get(1, 0),
            -entry.position_counts.get(2, 0),
            -entry.position_counts.get(3, 0),
            _time_or_inf(entry.total_time),
        )
    return (-entry.total_points,) + tuple(TIE_BREAK_KEYS[tb](entry) for tb in policy.tie_breakers)


def assign_ranks(keys: Sequence[Tuple[Any, ...]]) -> List[int]:
    """
    Ranks for an already sorted list of ordering keys.

    Equal keys share a rank and the counter keeps running, so a tie at the
    top gives 1, 1, 3.
    """
    ranks: List[int] = []
    for idx, key in enumerate(keys):
        if idx > 0 and key == keys[idx - 1]:
            ranks.append(ranks[-1])
        else:
            ranks.append(idx + 1)
    return ranks


def best_n(items: Iterable[Any], count: int, points: Callable[[Any], int]) -> List[Any]:
    """
    The ``count`` highest-scoring items; earlier items win on equal points.
    """
    indexed = list(enumerate(items))
    indexed.sort(key=lambda pair: (-points(pair[1]), pair[0]))
    return [item for _, item in indexed[:count]]
