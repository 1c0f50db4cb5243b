from regatta_rankings.policy import GroupBy, RankingPolicy
from regatta_rankings.ranking import (
    build_ranking_report,
    filter_races,
    is_masters_category,
    partition_races,
    summarize_report,
)
from regatta_rankings.snapshot import competition_from_document, normalize_ref, race_from_document


SENIOR_MEN = {"id": 1, "abbreviation": "Senior", "gender": "men", "titles": {"en": "Senior Men"}}
SENIOR_WOMEN = {"id": 2, "abbreviation": "SeniorW", "gender": "women", "titles": {"en": "Senior Women"}}
JUNIOR_MEN = {"id": 3, "abbreviation": "Junior", "gender": "men", "titles": {"en": "Junior Men"}}
MASTERS_MEN = {"id": 4, "abbreviation": "Masters A", "gender": "men", "titles": {"en": "Masters Men"}}

SKIFF = {"id": 10, "code": "1x", "crew_size": 1}
DOUBLE = {"id": 11, "code": "2x", "crew_size": 2}

CLUB_X = {"id": 100, "name": "Club X"}
CLUB_Y = {"id": 101, "name": "Club Y"}
CLUB_Z = {"id": 102, "name": "Club Z"}

COMPETITION = competition_from_document(
    {
        "id": 7,
        "code": "NAT-2026",
        "names": {"en": "National Championship"},
        "discipline": "classic",
        "season": 2026,
        "stages": [
            {"index": 1, "name": "Heats", "date": "2026-05-01"},
            {"index": 2, "name": "Finals", "date": "2026-05-02", "isFinalDay": True},
        ],
    }
)


def _lane(lane, club, status="ok", position=None, elapsed=None, athlete=None, crew=None):
    doc = {"lane": lane, "club": club, "result": {"status": status}}
    if position is not None:
        doc["result"]["finishPosition"] = position
    if elapsed is not None:
        doc["result"]["elapsedMs"] = elapsed
    if athlete is not None:
        doc["athlete"] = athlete
    if crew is not None:
        doc["crew"] = crew
    return doc


def _race(race_id, category, lanes, boat_class=SKIFF, journey=1, status="completed"):
    return race_from_document(
        {
            "id": race_id,
            "category": category,
            "boatClass": boat_class,
            "journeyIndex": journey,
            "raceNumber": race_id,
            "status": status,
            "lanes": lanes,
        }
    )


def _two_journey_tie():
    return [
        _race(
            1,
            SENIOR_MEN,
            [_lane(1, CLUB_X, position=1, elapsed=60000), _lane(2, CLUB_Y, position=2, elapsed=61000)],
        ),
        _race(
            2,
            SENIOR_MEN,
            [_lane(1, CLUB_Y, position=1, elapsed=59000), _lane(2, CLUB_X, position=2, elapsed=60500)],
        ),
    ]


def test_points_tie_broken_by_total_time():
    report = build_ranking_report(COMPETITION, _two_journey_tie(), RankingPolicy())
    ranking = report["rankings"]["Senior_men"]

    assert [e["entity_id"] for e in ranking] == ["101", "100"]
    y, x = ranking
    assert x["total_points"] == 32 and y["total_points"] == 32
    assert x["position_counts"][1] == 1 and y["position_counts"][1] == 1
    assert x["total_time"] == 120500
    assert y["total_time"] == 120000
    assert y["rank"] == 1
    assert x["rank"] == 2
    assert y["entity"]["name"] == "Club Y"
    assert report["group_metadata"]["Senior_men"] == {
        "gender": "men",
        "category_abbr": "Senior",
        "category_names": {"en": "Senior Men"},
    }


def test_identical_keys_share_rank_and_skip_next():
    races = [
        _race(1, SENIOR_MEN, [_lane(1, CLUB_X, position=1), _lane(2, CLUB_Z, position=3)]),
        _race(2, SENIOR_MEN, [_lane(1, CLUB_Y, position=1), _lane(2, CLUB_Z, position=2)]),
    ]
    ranking = build_ranking_report(COMPETITION, races, RankingPolicy())["rankings"]["Senior_men"]
    assert [e["rank"] for e in ranking] == [1, 1, 3]
    assert ranking[2]["entity_id"] == "102"


def test_report_shape_and_idempotence():
    races = _two_journey_tie()
    first = build_ranking_report(COMPETITION, races, RankingPolicy())
    second = build_ranking_report(COMPETITION, races, RankingPolicy())
    first.pop("generated_at")
    second.pop("generated_at")
    assert first == second

    assert first["competition"] == {"id": "7", "code": "NAT-2026", "names": {"en": "National Championship"}}
    assert first["ranking_system"] is None
    assert first["group_by"] == "category_gender"
    assert first["entity_type"] == "club"
    assert first["scoring_mode"] == "points"
    assert [s["index"] for s in first["stages"]] == [1, 2]
    entry = first["rankings"]["Senior_men"][0]
    assert entry["medals"] == {"gold": 1, "silver": 1, "bronze": 0, "total": 2}
    assert len(entry["race_results"]) == 2
    assert "club" not in entry


def test_non_finishers_counted_and_dnf_rule_applied():
    races = [
        _race(
            1,
            SENIOR_MEN,
            [
                _lane(1, CLUB_X, position=1, elapsed=60000),
                _lane(2, CLUB_Y, status="dnf"),
                _lane(3, CLUB_Z, status="dsq", position=2, elapsed=61000),
            ],
        )
    ]
    ranking = build_ranking_report(COMPETITION, races, RankingPolicy())["rankings"]["Senior_men"]
    by_id = {e["entity_id"]: e for e in ranking}

    y = by_id["101"]
    assert y["total_points"] == 12
    assert y["position_counts"] == {2: 1}
    assert y["dnf_count"] == 1
    assert y["total_time"] == 0
    assert y["race_results"][0]["applied_dnf_rule"] is True

    z = by_id["102"]
    assert z["total_points"] == 0
    assert z["dsq_count"] == 1
    assert z["total_time"] == 0
    assert z["position_counts"] == {}


def test_partition_is_disjoint_and_complete():
    races = [
        _race(1, SENIOR_MEN, [_lane(1, CLUB_X, position=1)]),
        _race(2, SENIOR_WOMEN, [_lane(1, CLUB_X, position=1)]),
        _race(3, JUNIOR_MEN, [_lane(1, CLUB_Y, position=1)]),
        _race(4, SENIOR_MEN, [_lane(1, CLUB_Y, position=1)], boat_class=DOUBLE),
    ]
    for group_by in GroupBy:
        groups = partition_races(races, group_by)
        seen = [race.id for group in groups.values() for race in group.races]
        assert sorted(seen) == sorted(r.id for r in races)
        assert len(seen) == len(set(seen))

    assert set(partition_races(races, GroupBy.GENDER)) == {"men", "women"}
    assert set(partition_races(races, GroupBy.CATEGORY)) == {"Senior", "SeniorW", "Junior"}
    assert set(partition_races(races, GroupBy.CATEGORY_GENDER)) == {"Senior_men", "SeniorW_women", "Junior_men"}
    assert partition_races(races, GroupBy.GENDER)["men"].metadata["category_abbr"] is None


def test_missing_category_fields_fall_back():
    race = _race(1, {"id": 55}, [_lane(1, CLUB_X, position=1)])
    assert set(partition_races([race], GroupBy.GENDER)) == {"unknown"}
    assert set(partition_races([race], GroupBy.CATEGORY)) == {"55"}
    assert set(partition_races([race], GroupBy.CATEGORY_GENDER)) == {"?_?"}


def test_final_only_keeps_final_stage_races():
    races = [
        _race(1, SENIOR_MEN, [_lane(1, CLUB_X, position=1)], journey=1),
        _race(2, SENIOR_MEN, [_lane(1, CLUB_Y, position=1)], journey=2),
    ]
    policy = RankingPolicy.from_document({"journey_mode": "final_only"})
    assert [r.id for r in filter_races(races, COMPETITION, policy)] == ["2"]

    no_final = competition_from_document({"id": 8, "stages": [{"index": 1}, {"index": 2}]})
    assert len(filter_races(races, no_final, policy)) == 2


def test_only_completed_races_count():
    races = [
        _race(1, SENIOR_MEN, [_lane(1, CLUB_X, position=1)]),
        _race(2, SENIOR_MEN, [_lane(1, CLUB_Y, position=1)], status="in_progress"),
    ]
    assert [r.id for r in filter_races(races, COMPETITION, RankingPolicy())] == ["1"]


def test_boat_class_allow_list_and_skiff_filter():
    races = [
        _race(1, SENIOR_MEN, [_lane(1, CLUB_X, position=1)], boat_class=SKIFF),
        _race(2, SENIOR_MEN, [_lane(1, CLUB_Y, position=1)], boat_class=DOUBLE),
        _race(3, SENIOR_MEN, [_lane(1, CLUB_Z, position=1)], boat_class=None),
    ]
    allow_double = RankingPolicy.from_document({"allowed_boat_class_ids": [11]})
    assert [r.id for r in filter_races(races, COMPETITION, allow_double)] == ["2"]

    skiffs = RankingPolicy.from_document({"boat_class_filter": "skiff_only"})
    assert [r.id for r in filter_races(races, COMPETITION, skiffs)] == ["1"]

    assert len(filter_races(races, COMPETITION, RankingPolicy())) == 3


def test_masters_exclusion_and_request_override():
    races = [
        _race(1, SENIOR_MEN, [_lane(1, CLUB_X, position=1)]),
        _race(2, MASTERS_MEN, [_lane(1, CLUB_Y, position=1)]),
    ]
    exclude = RankingPolicy.from_document({"include_masters": False})
    assert [r.id for r in filter_races(races, COMPETITION, exclude)] == ["1"]
    assert len(filter_races(races, COMPETITION, exclude, include_masters=True)) == 2
    assert [r.id for r in filter_races(races, COMPETITION, RankingPolicy(), include_masters=False)] == ["1"]

    for code in ("Masters A", "VET-M", "Masters_M", "MastersW", "VetM", "MST_W", "Veterans", "master"):
        assert is_masters_category(code), code
    for code in ("Senior", "Junior_W", "U23", "Vetting", "Mastery"):
        assert not is_masters_category(code), code
    assert not is_masters_category(None)

    compact = _race(3, {"id": 5, "abbreviation": "MastersW", "gender": "women"}, [_lane(1, CLUB_Z, position=1)])
    joined = _race(4, {"id": 6, "abbreviation": "MST_M", "gender": "men"}, [_lane(1, CLUB_Z, position=1)])
    assert [r.id for r in filter_races(races + [compact, joined], COMPETITION, exclude)] == ["1"]


def test_athlete_mode_credits_skiff_athletes():
    alice = {"id": 500, "firstName": "Alice", "lastName": "Amrani"}
    nadia = {"id": 501, "first_name": "Nadia", "last_name": "Bennis"}
    races = [
        _race(
            1,
            SENIOR_WOMEN,
            [
                _lane(1, CLUB_X, position=1, elapsed=70000, athlete=alice),
                _lane(2, CLUB_Y, position=2, elapsed=71000, crew=[nadia]),
            ],
        ),
        _race(
            2,
            SENIOR_WOMEN,
            [_lane(1, CLUB_X, position=1, elapsed=70000, crew=[alice, nadia])],
            boat_class=DOUBLE,
        ),
    ]
    policy = RankingPolicy.from_document({"entity_mode": "athlete", "boat_class_filter": "skiff_only"})
    report = build_ranking_report(COMPETITION, races, policy)
    ranking = report["rankings"]["SeniorW_women"]

    assert report["entity_type"] == "athlete"
    assert [e["entity_id"] for e in ranking] == ["500", "501"]
    assert ranking[0]["total_points"] == 20
    assert ranking[0]["entity_name"] == "Alice Amrani"
    assert ranking[0]["club_id"] == "100"
    assert ranking[1]["entity_name"] == "Nadia Bennis"
    assert ranking[1]["club"]["name"] == "Club Y"


def test_medal_mode_ranks_gold_over_silver():
    races = [_race(1, SENIOR_MEN, [_lane(1, CLUB_X, position=1), _lane(2, CLUB_Y, position=2)])]
    races.append(_race(2, SENIOR_MEN, [_lane(1, CLUB_X, position=1), _lane(2, CLUB_Y, position=2)]))
    for race_id in range(3, 6):
        races.append(_race(race_id, SENIOR_MEN, [_lane(1, CLUB_Z, position=2)]))
    races.append(_race(6, SENIOR_MEN, [_lane(1, CLUB_Z, position=1)]))
    races.append(_race(7, SENIOR_MEN, [_lane(1, CLUB_Z, position=2)]))

    policy = RankingPolicy.from_document({"scoring_mode": "medals"})
    ranking = build_ranking_report(COMPETITION, races, policy)["rankings"]["Senior_men"]

    # X: 2 gold; Z: 1 gold, 4 silver (more points); Y: 2 silver.
    assert [e["entity_id"] for e in ranking] == ["100", "102", "101"]
    assert ranking[1]["total_points"] > ranking[0]["total_points"]
    assert ranking[0]["medals"] == {"gold": 2, "silver": 0, "bronze": 0, "total": 2}
    assert [e["rank"] for e in ranking] == [1, 2, 3]


def test_best_n_counts_only_top_results():
    races = [
        _race(1, SENIOR_MEN, [_lane(1, CLUB_X, position=3, elapsed=60000)], journey=1),
        _race(2, SENIOR_MEN, [_lane(1, CLUB_X, position=1, elapsed=58000)], journey=1),
        _race(3, SENIOR_MEN, [_lane(1, CLUB_X, position=5, elapsed=62000)], journey=2),
    ]
    policy = RankingPolicy.from_document({"journey_mode": "best_n", "best_n_count": 2})
    entry = build_ranking_report(COMPETITION, races, policy)["rankings"]["Senior_men"][0]
    assert entry["total_points"] == 28
    assert entry["total_time"] == 118000
    assert entry["position_counts"] == {1: 1, 3: 1}
    assert [r["counted"] for r in entry["race_results"]] == [True, True, False]


def test_lanes_without_entity_are_skipped():
    races = [_race(1, SENIOR_MEN, [_lane(1, None, position=1), _lane(2, CLUB_X, position=2)])]
    ranking = build_ranking_report(COMPETITION, races, RankingPolicy())["rankings"]["Senior_men"]
    assert [e["entity_id"] for e in ranking] == ["100"]


def test_summary_strips_race_detail():
    report = build_ranking_report(COMPETITION, _two_journey_tie(), RankingPolicy())
    summary = summarize_report(report)
    entry = summary["rankings"]["Senior_men"][0]
    assert "race_results" not in entry
    assert entry["race_count"] == 2
    assert entry["entity_name"] == "Club Y"
    assert "race_results" in report["rankings"]["Senior_men"][0]


def test_normalize_ref_accepts_ids_and_records():
    assert normalize_ref(None) is None
    assert normalize_ref(12).id == "12"
    assert normalize_ref("abc").id == "abc"
    ref = normalize_ref({"_id": "c1", "name": "Club"})
    assert ref.id == "c1"
    assert ref.display_name == "Club"
    assert normalize_ref({"name": "no id"}) is None
