"""
Tests for the Typer CLI.
"""

import pytest
from typer.testing import CliRunner

from servicebooker import __version__
from servicebooker.cli.app import app

runner = CliRunner()


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        f"database_url: 'sqlite:///{tmp_path / 'cli.db'}'\n"
        "settings:\n"
        "  business_timezone: 'America/Los_Angeles'\n"
        "resources:\n"
        "  - id: north\n"
        "    name: North Depot\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def initialized(config_path):
    result = runner.invoke(app, ["init-db", "--config", str(config_path)])
    assert result.exit_code == 0, result.output
    return config_path


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_missing_config_file(tmp_path):
    result = runner.invoke(app, ["tiers", "--config", str(tmp_path / "nope.yaml")])

    assert result.exit_code == 1
    assert "Config file not found" in result.output


def test_init_db_seeds_database(initialized):
    result = runner.invoke(app, ["show-config", "--config", str(initialized)])

    assert result.exit_code == 0
    assert "America/Los_Angeles" in result.output


def test_command_before_init_db_fails_cleanly(config_path):
    result = runner.invoke(app, ["show-config", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "Error" in result.output


def test_tiers(initialized):
    result = runner.invoke(app, ["tiers", "--config", str(initialized)])

    assert result.exit_code == 0
    assert "Premium" in result.output
    assert "Emergency" in result.output


def test_book_then_list_and_cancel(initialized):
    result = runner.invoke(
        app,
        ["book", "--client", "alice", "--start", "2030-01-15T10:00", "--duration", "90",
         "--config", str(initialized)],
    )
    assert result.exit_code == 0, result.output
    assert "Booking created" in result.output
    request_number = next(
        word for word in result.output.split() if word.startswith("SR-")
    )

    result = runner.invoke(app, ["bookings", "2030-01-15", "--client", "alice", "--config", str(initialized)])
    assert result.exit_code == 0
    assert "You" in result.output

    result = runner.invoke(
        app, ["cancel", request_number, "--client", "alice", "--config", str(initialized)]
    )
    assert result.exit_code == 0, result.output
    assert "cancelled" in result.output


def test_rejected_booking_exits_with_error(initialized):
    args = ["--start", "2030-01-15T10:00", "--config", str(initialized)]
    first = runner.invoke(app, ["book", "--client", "alice", *args])
    assert first.exit_code == 0, first.output

    second = runner.invoke(app, ["book", "--client", "bob", *args])

    assert second.exit_code == 1
    assert "Overlap" in second.output


def test_suggest(initialized):
    result = runner.invoke(
        app, ["suggest", "2030-01-15", "--duration", "2", "--tier", "premium", "--config", str(initialized)]
    )

    assert result.exit_code == 0, result.output
    # 2030-01-15 is a Tuesday: the first premium band opens at 06:00.
    assert "2030-01-15 06:00" in result.output


def test_suggest_invalid_duration(initialized):
    result = runner.invoke(app, ["suggest", "2030-01-15", "--duration", "0.5", "--config", str(initialized)])

    assert result.exit_code == 1
    assert "at least 1 hour" in result.output


def test_estimate(initialized):
    result = runner.invoke(
        app, ["estimate", "--start", "2030-01-15T16:00", "--duration", "120", "--config", str(initialized)]
    )

    assert result.exit_code == 0, result.output
    assert "Total: $225.00" in result.output


def test_resources(initialized):
    result = runner.invoke(app, ["resources", "--config", str(initialized)])

    assert result.exit_code == 0, result.output
    assert "North Depot" in result.output


def test_book_at_unknown_location_fails(initialized):
    result = runner.invoke(
        app,
        ["book", "--client", "alice", "--start", "2030-01-15T10:00", "--resource", "south",
         "--config", str(initialized)],
    )

    assert result.exit_code == 1
    assert "Unknown or inactive service location" in result.output


def test_book_at_known_location(initialized):
    result = runner.invoke(
        app,
        ["book", "--client", "alice", "--start", "2030-01-15T10:00", "--resource", "north",
         "--config", str(initialized)],
    )

    assert result.exit_code == 0, result.output


def test_estimate_prorates_partial_half_hour(initialized):
    result = runner.invoke(
        app, ["estimate", "--start", "2030-01-15T09:00", "--duration", "75", "--config", str(initialized)]
    )

    assert result.exit_code == 0, result.output
    assert "Total: $125.00" in result.output
