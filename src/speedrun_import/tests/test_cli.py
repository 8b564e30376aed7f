from speedrun_import.cli import main


def test_score_command(capsys):
    main(["score", "--rank", "1"])
    assert capsys.readouterr().out.strip() == "60"


def test_score_command_co_op_individual_level(capsys):
    main(["score", "--rank", "3", "--run-type", "co-op", "--leaderboard-type", "individual-level"])
    assert capsys.readouterr().out.strip() == "8"


def test_score_command_obsolete(capsys):
    main(["score", "--rank", "1", "--obsolete"])
    assert capsys.readouterr().out.strip() == "10"
