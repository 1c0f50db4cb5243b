"""
Competition ranking engine.

Turns the completed races of one competition into ordered standings under a
``RankingPolicy``: filter races, partition them into groups, credit every
lane's points to a club or athlete, then order and rank each group.

The engine only reads the snapshots it is given and keeps no state between
calls; every report is recomputed from scratch.
"""
from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from regatta_rankings.policy import (
    BoatClassFilter,
    EntityMode,
    GroupBy,
    JourneyMode,
    RankingPolicy,
)
from regatta_rankings.rules import (
    NO_TIME,
    NON_SCORING_STATUSES,
    LanePoints,
    analyze_race_context,
    assign_ranks,
    best_n,
    medal_tally,
    ordering_key,
    resolve_lane_points,
)
from regatta_rankings.snapshot import CompetitionInfo, Lane, Race, Ref


DEFAULT_MASTERS_PATTERN = r"(?i)(?:^|[^a-z])(masters?|vet(eran)?s?|mst)(?:[^a-z]|[mwx]?$)"


# --- filtering & grouping ----------------------------------------------


def is_masters_category(abbreviation: Optional[str], pattern: str = DEFAULT_MASTERS_PATTERN) -> bool:
    if not abbreviation:
        return False
    return re.search(pattern, abbreviation) is not None


def filter_races(
    races: Sequence[Race],
    competition: CompetitionInfo,
    policy: RankingPolicy,
    include_masters: Optional[bool] = None,
    masters_pattern: str = DEFAULT_MASTERS_PATTERN,
) -> List[Race]:
    """
    Keep the races that count for this policy.

    Order: completed status, journey mode, boat-class allow-list, skiff-only,
    masters exclusion. ``include_masters`` overrides the policy default.
    """
    kept = [r for r in races if r.status == "completed"]

    if policy.journey_mode is JourneyMode.FINAL_ONLY:
        final_index = competition.final_stage_index
        if final_index is None:
            logger.warning(
                "Competition {} has no final stage; final_only keeps every journey", competition.id
            )
        else:
            kept = [r for r in kept if r.journey_index == final_index]

    if policy.allowed_boat_class_ids:
        kept = [
            r for r in kept if r.boat_class is not None and r.boat_class.id in policy.allowed_boat_class_ids
        ]

    if policy.boat_class_filter is BoatClassFilter.SKIFF_ONLY:
        kept = [r for r in kept if r.boat_class is not None and r.boat_class.is_skiff]

    masters_allowed = policy.include_masters if include_masters is None else include_masters
    if not masters_allowed:
        kept = [
            r
            for r in kept
            if not is_masters_category(r.category.abbreviation if r.category else None, masters_pattern)
        ]

    logger.debug("Kept {} of {} races for competition {}", len(kept), len(races), competition.id)
    return kept


def group_key(race: Race, group_by: GroupBy) -> str:
    category = race.category
    if group_by is GroupBy.GENDER:
        return (category.gender if category else None) or "unknown"
    if group_by is GroupBy.CATEGORY:
        if category is None:
            return "unknown"
        return category.abbreviation or category.id
    abbr = (category.abbreviation if category else None) or "?"
    gender = (category.gender if category else None) or "?"
    return f"{abbr}_{gender}"


@dataclass
class RaceGroup:
    key: str
    races: List[Race] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


def partition_races(races: Sequence[Race], group_by: GroupBy) -> Dict[str, RaceGroup]:
    """
    Split races into disjoint groups; each race lands in exactly one.
    """
    groups: Dict[str, RaceGroup] = {}
    for race in races:
        key = group_key(race, group_by)
        group = groups.get(key)
        if group is None:
            category = race.category
            by_gender = group_by is GroupBy.GENDER
            group = RaceGroup(
                key=key,
                metadata={
                    "gender": category.gender if category else None,
                    "category_abbr": None if by_gender or category is None else category.abbreviation,
                    "category_names": None if by_gender or category is None else dict(category.titles),
                },
            )
            groups[key] = group
        group.races.append(race)
    return groups


# --- aggregation --------------------------------------------------------


@dataclass
class Contribution:
    race: Race
    lane: Lane
    lane_points: LanePoints


@dataclass
class RankingEntry:
    entity_id: str
    entity_type: str
    entity: Ref
    club: Optional[Ref] = None
    total_points: int = 0
    total_time: int = 0
    position_counts: Dict[int, int] = field(default_factory=dict)
    status_counts: Dict[str, int] = field(default_factory=lambda: {s: 0 for s in NON_SCORING_STATUSES})
    race_results: List[Dict[str, Any]] = field(default_factory=list)
    rank: Optional[int] = None

    @property
    def display_name(self) -> str:
        return self.entity.display_name

    @property
    def best_time(self) -> float:
        times = [r["time_ms"] for r in self.race_results if r["counted"] and r["status"] == "ok" and r["time_ms"]]
        return min(times) if times else NO_TIME

    @property
    def medals(self) -> Dict[str, int]:
        return medal_tally(self.position_counts)

    def record(self, contribution: Contribution, counted: bool) -> None:
        race, lane, lane_points = contribution.race, contribution.lane, contribution.lane_points
        result = lane.result
        elapsed = result.elapsed_ms if result else None
        if counted:
            self.total_points += lane_points.points
            if result is not None and result.status == "ok" and elapsed:
                self.total_time += elapsed
            if lane_points.effective_position:
                pos = lane_points.effective_position
                self.position_counts[pos] = self.position_counts.get(pos, 0) + 1
            if lane_points.status in self.status_counts:
                self.status_counts[lane_points.status] += 1
        self.race_results.append(
            {
                "race_id": race.id,
                "race_number": race.race_number,
                "journey_index": race.journey_index,
                "boat_class": race.boat_class.code if race.boat_class else None,
                "category": race.category.abbreviation if race.category else None,
                "lane": lane.lane,
                "position": lane_points.effective_position,
                "finish_position": result.finish_position if result else None,
                "points": lane_points.points,
                "time_ms": elapsed,
                "status": lane_points.status,
                "applied_dnf_rule": lane_points.applied_dnf_rule,
                "counted": counted,
            }
        )

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "rank": self.rank,
            "entity_id": self.entity_id,
            "entity_type": self.entity_type,
            "entity": self.entity.as_dict(),
            "entity_name": self.display_name or "Unknown",
        }
        if self.entity_type == EntityMode.ATHLETE.value:
            data["club"] = self.club.as_dict() if self.club else None
            data["club_id"] = self.club.id if self.club else None
        data.update(
            {
                "total_points": self.total_points,
                "total_time": self.total_time,
                "race_results": list(self.race_results),
                "position_counts": dict(sorted(self.position_counts.items())),
                "medals": self.medals,
                "dns_count": self.status_counts["dns"],
                "dnf_count": self.status_counts["dnf"],
                "dsq_count": self.status_counts["dsq"],
                "abs_count": self.status_counts["abs"],
            }
        )
        return data


def _lane_entities(lane: Lane, entity_mode: EntityMode) -> List[Ref]:
    if entity_mode is EntityMode.ATHLETE:
        return list(lane.crew)
    return [lane.club] if lane.club is not None else []


def aggregate_group(races: Sequence[Race], policy: RankingPolicy) -> List[RankingEntry]:
    """
    Credit every lane of every race to its club or athlete(s).
    """
    entries: Dict[str, RankingEntry] = {}
    contributions: Dict[str, List[Contribution]] = defaultdict(list)
    skipped = 0

    for race in races:
        context = analyze_race_context(race.lanes)
        for lane in race.lanes:
            lane_points = resolve_lane_points(lane.result, context, policy)
            entities = _lane_entities(lane, policy.entity_mode)
            if not entities:
                skipped += 1
                continue
            for entity in entities:
                if entity.id not in entries:
                    entries[entity.id] = RankingEntry(
                        entity_id=entity.id,
                        entity_type=policy.entity_mode.value,
                        entity=entity,
                        club=lane.club if policy.entity_mode is EntityMode.ATHLETE else None,
                    )
                contributions[entity.id].append(Contribution(race, lane, lane_points))

    if skipped:
        logger.debug("Skipped {} lanes without a {} to credit", skipped, policy.entity_mode.value)

    for entity_id, entry in entries.items():
        items = contributions[entity_id]
        if policy.journey_mode is JourneyMode.BEST_N:
            counted_ids = {id(c) for c in best_n(items, policy.best_n_count, lambda c: c.lane_points.points)}
        else:
            counted_ids = {id(c) for c in items}
        for contribution in items:
            entry.record(contribution, counted=id(contribution) in counted_ids)

    return list(entries.values())


# --- ranking ------------------------------------------------------------


def rank_entries(entries: Sequence[RankingEntry], policy: RankingPolicy) -> List[RankingEntry]:
    keyed: List[Tuple[Tuple[Any, ...], RankingEntry]] = [(ordering_key(e, policy), e) for e in entries]
    # Entity id keeps fully tied entries in a stable, reproducible order.
    keyed.sort(key=lambda pair: (pair[0], pair[1].entity_id))
    ranks = assign_ranks([key for key, _ in keyed])
    ordered = []
    for rank, (_, entry) in zip(ranks, keyed):
        entry.rank = rank
        ordered.append(entry)
    return ordered


# --- report -------------------------------------------------------------


def build_ranking_report(
    competition: CompetitionInfo,
    races: Sequence[Race],
    policy: RankingPolicy,
    ranking_system: Optional[Mapping[str, Any]] = None,
    include_masters: Optional[bool] = None,
    masters_pattern: str = DEFAULT_MASTERS_PATTERN,
) -> Dict[str, Any]:
    eligible = filter_races(races, competition, policy, include_masters, masters_pattern)
    groups = partition_races(eligible, policy.group_by)

    rankings: Dict[str, List[Dict[str, Any]]] = {}
    group_metadata: Dict[str, Dict[str, Any]] = {}
    for key, group in groups.items():
        ranked = rank_entries(aggregate_group(group.races, policy), policy)
        rankings[key] = [entry.as_dict() for entry in ranked]
        group_metadata[key] = group.metadata

    logger.info(
        "Ranking for competition {}: {} races, {} groups ({} / {} / {})",
        competition.id,
        len(eligible),
        len(groups),
        policy.group_by.value,
        policy.entity_mode.value,
        policy.scoring_mode.value,
    )

    return {
        "competition": {"id": competition.id, "code": competition.code, "names": dict(competition.names)},
        "ranking_system": dict(ranking_system) if ranking_system else None,
        "group_by": policy.group_by.value,
        "entity_type": policy.entity_mode.value,
        "scoring_mode": policy.scoring_mode.value,
        "rankings": rankings,
        "group_metadata": group_metadata,
        "stages": [{"index": s.index, "name": s.name, "date": s.date} for s in competition.stages],
        "generated_at": datetime.now(timezone.utc),
    }


def summarize_report(report: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Same report with the race-by-race detail replaced by a race count.
    """
    summary = dict(report)
    summary["rankings"] = {
        key: [
            {
                **{k: v for k, v in entry.items() if k != "race_results"},
                "race_count": len(entry["race_results"]),
            }
            for entry in entries
        ]
        for key, entries in report["rankings"].items()
    }
    return summary
