"""Tests for the command line interface."""

import json
import logging

import pytest

from lapchart.cli import main, parse_args, read_slot_files
from lapchart.errors import ParseError


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers main() attached to captured streams."""
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


@pytest.fixture
def speedhive_paths(tmp_path, speedhive_files):
    summary = tmp_path / "summary.csv"
    laps = tmp_path / "laps.csv"
    summary.write_text(speedhive_files["summaryCsv"], encoding="utf-8")
    laps.write_text(speedhive_files["lapsCsv"], encoding="utf-8")
    return [f"summaryCsv={summary}", f"lapsCsv={laps}"]


@pytest.fixture
def dataset(tmp_path, speedhive_paths):
    out = tmp_path / "race.json"
    args = ["--log-level", "ERROR", "ingest", "--format", "speedhive", "-o", str(out)]
    for spec in speedhive_paths:
        args += ["--file", spec]
    assert main(args) == 0
    return out


class TestArguments:
    """Test argument parsing."""

    def test_ingest_args(self):
        """Test repeatable file slots."""
        args = parse_args(["ingest", "--format", "imsa", "--file", "a=x", "--file", "b=y"])
        assert args.command == "ingest"
        assert args.file == ["a=x", "b=y"]
        assert str(args.output) == "race.json"

    def test_unknown_format_rejected(self):
        """Test argparse rejects unregistered formats."""
        with pytest.raises(SystemExit):
            parse_args(["ingest", "--format", "nope"])

    def test_bad_slot_spec(self):
        """Test file arguments must be SLOT=PATH."""
        with pytest.raises(ParseError, match="SLOT=PATH"):
            read_slot_files(["summary.csv"])

    def test_bom_stripped(self, tmp_path):
        """Test files saved with a byte order mark are read cleanly."""
        path = tmp_path / "summary.csv"
        path.write_bytes(b"\xef\xbb\xbfStart Number\n1\n")
        assert read_slot_files([f"summaryCsv={path}"]) == {"summaryCsv": "Start Number\n1\n"}


class TestCommands:
    """Test subcommands end to end."""

    def test_formats(self, capsys):
        """Test listing formats and their file slots."""
        assert main(["--log-level", "ERROR", "formats"]) == 0
        out = capsys.readouterr().out
        assert "speedhive" in out
        assert "lapChartJson" in out

    def test_ingest(self, dataset):
        """Test ingesting writes the dataset."""
        raw = json.loads(dataset.read_text(encoding="utf-8"))
        assert raw["data"]["maxLap"] == 3
        assert raw["data"]["fcy"] == [[2, 2]]
        assert "2" in raw["annotations"]

    def test_ingest_laps_csv(self, tmp_path, speedhive_paths, capsys):
        """Test the optional lap table."""
        table = tmp_path / "out" / "laps_out.csv"
        args = [
            "--log-level", "ERROR", "ingest", "--format", "speedhive",
            "-o", str(tmp_path / "race.json"), "--laps-csv", str(table),
        ]
        for spec in speedhive_paths:
            args += ["--file", spec]
        assert main(args) == 0
        assert table.read_text(encoding="utf-8").startswith("car_num,team,class,lap")
        assert "2 cars, 3 laps, 1 caution periods" in capsys.readouterr().out

    def test_strategy(self, dataset, capsys):
        """Test the strategy table."""
        capsys.readouterr()
        assert main(["--log-level", "ERROR", "strategy", str(dataset), "--class", "GT3"]) == 0
        out = capsys.readouterr().out
        assert "Score" in out
        assert "#1" in out and "#2" in out

    def test_rankings(self, dataset, capsys):
        """Test per-lap rankings, skipping the caution lap."""
        capsys.readouterr()
        assert main(["--log-level", "ERROR", "rankings", str(dataset)]) == 0
        out = capsys.readouterr().out.splitlines()
        assert out == ["Lap 1: 1:#1 2:#2", "Lap 3: 1:#2 2:#1"]

    def test_rankings_caution_lap(self, dataset, capsys):
        """Test asking for a caution lap explains why it has no ranking."""
        capsys.readouterr()
        assert main(["--log-level", "ERROR", "rankings", str(dataset), "--lap", "2"]) == 0
        assert "no ranking" in capsys.readouterr().out

    def test_parse_error_exit_code(self, tmp_path, capsys):
        """Test fatal input errors exit with status 1."""
        empty = tmp_path / "laps.csv"
        empty.write_text("", encoding="utf-8")
        code = main([
            "--log-level", "ERROR", "ingest", "--format", "speedhive",
            "--file", f"lapsCsv={empty}", "-o", str(tmp_path / "race.json"),
        ])
        assert code == 1
        assert "Error: Missing Summary CSV" in capsys.readouterr().err

    def test_missing_dataset(self, tmp_path, capsys):
        """Test a missing dataset file exits with status 1."""
        assert main(["--log-level", "ERROR", "strategy", str(tmp_path / "none.json")]) == 1

    def test_bad_config(self, tmp_path, capsys):
        """Test an invalid config file exits with status 1."""
        config = tmp_path / "lapchart.json"
        config.write_text(json.dumps({"bogus": {}}), encoding="utf-8")
        assert main(["--config", str(config), "formats"]) == 1
        assert "Unknown configuration section" in capsys.readouterr().err
