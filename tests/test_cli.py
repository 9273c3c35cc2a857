"""Tests for the typer command line."""

import tomllib

from typer.testing import CliRunner

from autotrack.cli import app
from autotrack.config import AppConfig
from autotrack.db import insert_analysis, insert_sample, open_database
from autotrack.models import ActivityEstimate, Evidence, Project, ReconcileAction, ReconcileOutcome
from autotrack.reporting import aggregate_titles, format_estimate

from conftest import utc

runner = CliRunner()


def test_init_config_writes_a_loadable_file(tmp_path):
    target = tmp_path / "nested" / "config.toml"
    result = runner.invoke(app, ["init-config", "--path", str(target)])

    assert result.exit_code == 0
    AppConfig.model_validate(tomllib.loads(target.read_text(encoding="utf-8")))


def test_init_config_refuses_to_overwrite(tmp_path):
    target = tmp_path / "config.toml"
    target.write_text("keep me", encoding="utf-8")

    result = runner.invoke(app, ["init-config", "--path", str(target)])
    assert result.exit_code == 1
    assert target.read_text(encoding="utf-8") == "keep me"

    result = runner.invoke(app, ["init-config", "--path", str(target), "--force"])
    assert result.exit_code == 0
    assert "[toggl]" in target.read_text(encoding="utf-8")


def test_bad_config_exits_with_code_2(tmp_path):
    target = tmp_path / "config.toml"
    target.write_text("[general]\ntime_block_division = 7\n", encoding="utf-8")
    result = runner.invoke(app, ["analyze", "--config", str(target)])
    assert result.exit_code == 2


def test_summary_lists_samples_and_analyses(tmp_path, make_sample):
    db_path = tmp_path / "activity.sqlite3"
    conn = open_database(db_path)
    insert_sample(conn, make_sample("Terminal", utc(10, 1)))
    insert_analysis(
        conn,
        ActivityEstimate(label="ターミナル作業", confidence=1.0, timestamp=utc(10, 1)),
        ReconcileOutcome(ReconcileAction.CREATED, "new entry", entry_id=9),
    )
    conn.close()

    result = runner.invoke(app, ["summary", "--db", str(db_path), "--minutes", "60"])
    assert result.exit_code == 0
    assert "Recent analyses:" in result.output
    assert "#9" in result.output


def test_aggregate_titles(make_sample):
    samples = [make_sample(title, utc(10)) for title in ("a", "b", "a", "")]
    assert aggregate_titles(samples) == [("a", 2), ("b", 1), ("(untitled)", 1)]


def test_format_estimate(make_event):
    estimate = ActivityEstimate(
        label="ミーティング",
        confidence=0.8,
        timestamp=utc(10),
        evidence=Evidence("zoom meeting", make_event("standup", "Standup", utc(10))),
    )
    text = format_estimate(estimate, Project(1, "Meetings", 7))
    assert "ミーティング (0.80, heuristic)" in text
    assert "Meetings" in text
    assert "Standup" in text


def test_summary_reads_the_configured_data_dir(tmp_path):
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        f'[general]\ndata_dir = "{data_dir.as_posix()}"\n'
        '[toggl]\napi_token = "t"\nworkspace_id = 7\n',
        encoding="utf-8",
    )
    conn = open_database(data_dir / "activity.sqlite3")
    insert_analysis(
        conn,
        ActivityEstimate(label="プログラミング", confidence=0.9, timestamp=utc(10)),
        ReconcileOutcome(ReconcileAction.MERGED, "extended adjacent entry", entry_id=31),
    )
    conn.close()

    result = runner.invoke(app, ["summary", "--config", str(config_path)])
    assert result.exit_code == 0
    assert "#31" in result.output
