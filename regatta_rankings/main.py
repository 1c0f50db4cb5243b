from __future__ import annotations

from typing import Optional

from fastapi import Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from sqlalchemy.orm import Session

from regatta_rankings.config import get_settings
from regatta_rankings.database import Base, engine, get_db
from regatta_rankings.logging_config import setup_logging
from regatta_rankings.policy import presets_for_discipline
from regatta_rankings.schemas import RankingPreviewRequest, RankingSystemCreate, RankingSystemUpdate
from regatta_rankings.services import (
    available_systems_for_competition,
    competition_group_ranking,
    competition_ranking,
    create_ranking_system,
    delete_ranking_system,
    get_ranking_system_or_404,
    list_ranking_systems,
    preview_ranking,
    ranking_system_out,
    sync_presets,
    update_ranking_system,
)


app = FastAPI(
    title="Regatta Rankings - Competition Ranking & Scoring Engine",
    version="1.0.0",
    description=(
        "Turns completed races into competition standings under configurable "
        "ranking systems: grouping, point tables, DNF rule, tie-breakers, "
        "club or athlete attribution, points or medal tables."
    ),
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    setup_logging()
    Base.metadata.create_all(bind=engine)
    logger.info("Regatta rankings service started")


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/rankings/systems")
def get_ranking_systems(
    discipline: Optional[str] = Query(default=None),
    active_only: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    return list_ranking_systems(db, discipline=discipline, active_only=active_only)


@app.get("/rankings/systems/{system_id}")
def get_ranking_system(system_id: int, db: Session = Depends(get_db)):
    return ranking_system_out(get_ranking_system_or_404(db, system_id))


@app.post("/rankings/systems", status_code=201)
def post_ranking_system(payload: RankingSystemCreate, db: Session = Depends(get_db)):
    system = create_ranking_system(db, payload)
    db.commit()
    db.refresh(system)
    return ranking_system_out(system)


@app.put("/rankings/systems/{system_id}")
def put_ranking_system(system_id: int, payload: RankingSystemUpdate, db: Session = Depends(get_db)):
    system = update_ranking_system(db, system_id, payload)
    db.commit()
    db.refresh(system)
    return ranking_system_out(system)


@app.delete("/rankings/systems/{system_id}")
def remove_ranking_system(system_id: int, db: Session = Depends(get_db)):
    delete_ranking_system(db, system_id)
    db.commit()
    return {"message": "Ranking system deleted"}


@app.get("/rankings/presets")
def get_presets(discipline: Optional[str] = Query(default=None)):
    return presets_for_discipline(discipline)


@app.post("/rankings/presets/sync")
def post_presets_sync(db: Session = Depends(get_db)):
    results = sync_presets(db)
    db.commit()
    return {"message": "Presets synced successfully", "results": results}


@app.get("/rankings/competitions/{competition_id}")
def get_competition_ranking(
    competition_id: int,
    system_id: Optional[int] = Query(default=None),
    preset: Optional[str] = Query(default=None),
    summary: bool = Query(default=False),
    include_masters: Optional[bool] = Query(default=None),
    db: Session = Depends(get_db),
):
    return competition_ranking(
        db,
        competition_id,
        system_id=system_id,
        preset_code=preset,
        summary=summary,
        include_masters=include_masters,
    )


@app.get("/rankings/competitions/{competition_id}/groups/{group_key}")
def get_competition_group_ranking(
    competition_id: int,
    group_key: str,
    system_id: Optional[int] = Query(default=None),
    preset: Optional[str] = Query(default=None),
    include_masters: Optional[bool] = Query(default=None),
    db: Session = Depends(get_db),
):
    return competition_group_ranking(
        db,
        competition_id,
        group_key,
        system_id=system_id,
        preset_code=preset,
        include_masters=include_masters,
    )


@app.get("/rankings/competitions/{competition_id}/available-systems")
def get_available_systems(competition_id: int, db: Session = Depends(get_db)):
    return available_systems_for_competition(db, competition_id)


@app.post("/rankings/preview")
def post_ranking_preview(payload: RankingPreviewRequest):
    return preview_ranking(payload)
