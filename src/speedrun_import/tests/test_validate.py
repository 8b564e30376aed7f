from speedrun_import.models import LocalRun
from speedrun_import.validate import validate_run


def _run(**overrides) -> LocalRun:
    fields = dict(
        player_name="Alice",
        category="c1",
        platform="p1",
        time="01:02:03",
        date="2024-03-01",
    )
    fields.update(overrides)
    return LocalRun(**fields)


def test_valid_run_has_no_violations():
    assert validate_run(_run()) == []


def test_time_and_date_formats():
    assert validate_run(_run(time="1:02:03")) == []
    assert validate_run(_run(time="")) == ["missing time"]
    assert validate_run(_run(time="62:03")) == ['invalid time format "62:03" (expected HH:MM:SS)']
    assert validate_run(_run(date="")) == ["missing date"]
    assert validate_run(_run(date="03/01/2024")) == [
        'invalid date format "03/01/2024" (expected YYYY-MM-DD)'
    ]


def test_unmapped_category_reports_foreign_name():
    assert validate_run(_run(category="", src_category_name="Free Play")) == [
        'category "Free Play" not found on leaderboards'
    ]
    assert validate_run(_run(category="")) == ['category "Unknown" not found on leaderboards']


def test_platform_accepts_foreign_name():
    assert validate_run(_run(platform="", src_platform_name="Wii")) == []
    assert validate_run(_run(platform="")) == ["missing platform"]


def test_individual_level_needs_level():
    errors = validate_run(_run(leaderboard_type="individual-level"))
    assert errors == ["missing level for individual level run"]
    assert validate_run(_run(leaderboard_type="individual-level", src_level_name="Negotiations")) == []
    assert validate_run(_run(leaderboard_type="community-golds", level="l1")) == []


def test_co_op_needs_second_player():
    assert validate_run(_run(run_type="co-op")) == ["missing player 2 name for co-op run"]
    assert validate_run(_run(run_type="co-op", player2_name="Bob")) == []


def test_all_violations_reported_in_order():
    errors = validate_run(LocalRun(player_name="", run_type="trio", leaderboard_type="weekly"))
    assert errors == [
        "missing player name",
        "missing time",
        "missing date",
        'category "Unknown" not found on leaderboards',
        "missing platform",
        'invalid run type "trio"',
        'invalid leaderboard type "weekly"',
    ]
