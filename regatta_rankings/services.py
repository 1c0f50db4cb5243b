from __future__ import annotations

import copy
from typing import Any, Mapping, Optional, Tuple

from fastapi import HTTPException
from loguru import logger
from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from regatta_rankings.config import get_settings
from regatta_rankings.models import Competition, Race, RaceLane, RankingSystem
from regatta_rankings.policy import RankingPolicy, RankingPolicyError, get_preset, presets_for_discipline
from regatta_rankings.ranking import build_ranking_report, summarize_report
from regatta_rankings.schemas import RankingPreviewRequest, RankingSystemCreate, RankingSystemUpdate
from regatta_rankings.snapshot import (
    competition_from_document,
    competition_from_row,
    race_from_document,
    race_from_row,
)


POLICY_FIELDS = (
    "group_by",
    "entity_mode",
    "scoring_mode",
    "journey_mode",
    "best_n_count",
    "boat_class_filter",
    "allowed_boat_class_ids",
    "custom_point_table",
    "max_scoring_position",
    "dnf_gets_points_if_few_finishers",
    "tie_breakers",
    "include_masters",
)


def get_or_404(db: Session, model: Any, obj_id: int, label: str):
    obj = db.get(model, obj_id)
    if not obj:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj


def get_competition_or_404(db: Session, competition_id: int) -> Competition:
    return get_or_404(db, Competition, competition_id, "Competition")


def get_ranking_system_or_404(db: Session, system_id: int) -> RankingSystem:
    return get_or_404(db, RankingSystem, system_id, "Ranking system")


def parse_policy(document: Optional[Mapping[str, Any]]) -> RankingPolicy:
    try:
        return RankingPolicy.from_document(document)
    except RankingPolicyError as exc:
        raise HTTPException(status_code=422, detail=f"Invalid ranking policy: {exc}") from exc


# --- ranking systems ----------------------------------------------------


def system_policy_document(system: RankingSystem) -> dict[str, Any]:
    return {name: getattr(system, name) for name in POLICY_FIELDS}


def ranking_system_out(system: RankingSystem) -> dict[str, Any]:
    return {
        "id": system.id,
        "code": system.code,
        "names": system.names,
        "description": system.description,
        "discipline": system.discipline,
        **system_policy_document(system),
        "is_preset": system.is_preset,
        "is_active": system.is_active,
        "sort_order": system.sort_order,
        "created_at": system.created_at,
    }


def list_ranking_systems(
    db: Session, discipline: Optional[str] = None, active_only: bool = False
) -> list[dict[str, Any]]:
    query = select(RankingSystem)
    if discipline:
        query = query.where(or_(RankingSystem.discipline == discipline, RankingSystem.discipline.is_(None)))
    if active_only:
        query = query.where(RankingSystem.is_active.is_(True))
    rows = db.scalars(query.order_by(RankingSystem.sort_order.asc(), RankingSystem.code.asc())).all()
    return [ranking_system_out(r) for r in rows]


def create_ranking_system(db: Session, payload: RankingSystemCreate) -> RankingSystem:
    data = payload.model_dump(mode="json")
    data["code"] = data["code"].strip().upper()
    parse_policy(data)

    existing = db.scalar(select(RankingSystem).where(RankingSystem.code == data["code"]))
    if existing:
        raise HTTPException(status_code=400, detail="A ranking system with this code already exists")

    system = RankingSystem(**data, is_preset=False)
    db.add(system)
    db.flush()
    logger.info("Created ranking system {} ({})", system.code, system.id)
    return system


def update_ranking_system(db: Session, system_id: int, payload: RankingSystemUpdate) -> RankingSystem:
    system = get_ranking_system_or_404(db, system_id)
    changes = payload.model_dump(mode="json", exclude_unset=True)

    # Validate the merged document before touching the row.
    merged = {**system_policy_document(system), **{k: v for k, v in changes.items() if k in POLICY_FIELDS}}
    parse_policy(merged)

    for name, value in changes.items():
        setattr(system, name, value)
    return system


def delete_ranking_system(db: Session, system_id: int) -> None:
    system = get_ranking_system_or_404(db, system_id)
    if system.is_preset:
        raise HTTPException(status_code=400, detail="Cannot delete preset ranking systems")
    db.delete(system)


def sync_presets(db: Session) -> list[dict[str, str]]:
    results: list[dict[str, str]] = []
    for preset in presets_for_discipline():
        values = copy.deepcopy(dict(preset))
        existing = db.scalar(select(RankingSystem).where(RankingSystem.code == preset["code"]))
        if existing:
            for name, value in values.items():
                setattr(existing, name, value)
            existing.is_preset = True
            results.append({"code": preset["code"], "action": "updated"})
        else:
            db.add(RankingSystem(**values, is_preset=True, is_active=True))
            results.append({"code": preset["code"], "action": "created"})
    db.flush()
    return results


# --- competition rankings ----------------------------------------------


def load_completed_races(db: Session, competition_id: int) -> list[Race]:
    return list(
        db.scalars(
            select(Race)
            .where(Race.competition_id == competition_id, Race.status == "completed")
            .options(
                selectinload(Race.category),
                selectinload(Race.boat_class),
                selectinload(Race.lanes).selectinload(RaceLane.club),
                selectinload(Race.lanes).selectinload(RaceLane.athlete),
                selectinload(Race.lanes).selectinload(RaceLane.crew),
            )
            .order_by(Race.journey_index.asc(), Race.race_number.asc(), Race.id.asc())
        ).all()
    )


def resolve_policy(
    db: Session, system_id: Optional[int] = None, preset_code: Optional[str] = None
) -> Tuple[RankingPolicy, Optional[dict[str, Any]]]:
    """
    Stored system wins over preset; neither gives the built-in default.
    """
    if system_id is not None:
        system = get_ranking_system_or_404(db, system_id)
        policy = parse_policy(system_policy_document(system))
        return policy, {
            "id": system.id,
            "code": system.code,
            "names": system.names,
            "scoring_mode": policy.scoring_mode.value,
        }
    if preset_code:
        preset = get_preset(preset_code)
        if preset is None:
            raise HTTPException(status_code=404, detail="Ranking preset not found")
        policy = parse_policy(preset)
        return policy, {
            "id": None,
            "code": preset["code"],
            "names": dict(preset["names"]),
            "scoring_mode": policy.scoring_mode.value,
        }
    return RankingPolicy(), None


def competition_ranking(
    db: Session,
    competition_id: int,
    system_id: Optional[int] = None,
    preset_code: Optional[str] = None,
    summary: bool = False,
    include_masters: Optional[bool] = None,
) -> dict[str, Any]:
    competition = get_competition_or_404(db, competition_id)
    policy, system_info = resolve_policy(db, system_id, preset_code)
    races = [race_from_row(r) for r in load_completed_races(db, competition.id)]

    report = build_ranking_report(
        competition_from_row(competition),
        races,
        policy,
        ranking_system=system_info,
        include_masters=include_masters,
        masters_pattern=get_settings().masters_category_pattern,
    )
    return summarize_report(report) if summary else report


def competition_group_ranking(
    db: Session,
    competition_id: int,
    group_key: str,
    system_id: Optional[int] = None,
    preset_code: Optional[str] = None,
    include_masters: Optional[bool] = None,
) -> dict[str, Any]:
    report = competition_ranking(
        db, competition_id, system_id, preset_code, summary=False, include_masters=include_masters
    )
    ranking = report["rankings"].get(group_key)
    if ranking is None:
        raise HTTPException(
            status_code=404,
            detail={"message": "Group not found", "available_groups": sorted(report["rankings"].keys())},
        )
    return {
        "competition": report["competition"],
        "ranking_system": report["ranking_system"],
        "group_key": group_key,
        "group_metadata": report["group_metadata"][group_key],
        "ranking": ranking,
        "generated_at": report["generated_at"],
    }


def available_systems_for_competition(db: Session, competition_id: int) -> dict[str, Any]:
    competition = get_competition_or_404(db, competition_id)
    return {
        "competition": {
            "id": competition.id,
            "code": competition.code,
            "discipline": competition.discipline,
        },
        "available_systems": list_ranking_systems(db, discipline=competition.discipline, active_only=True),
        "presets": [p["code"] for p in presets_for_discipline(competition.discipline)],
    }


def preview_ranking(payload: RankingPreviewRequest) -> dict[str, Any]:
    policy = parse_policy(payload.policy)
    report = build_ranking_report(
        competition_from_document(payload.competition),
        [race_from_document(doc) for doc in payload.races],
        policy,
        include_masters=payload.include_masters,
        masters_pattern=get_settings().masters_category_pattern,
    )
    return summarize_report(report) if payload.summary else report
