"""Tests for the command-line entry point."""

from pathlib import Path

import pytest

from kindred.main import build_parser, main

pytestmark = pytest.mark.usefixtures("_no_turso")


def test_parse_ingest() -> None:
    args = build_parser().parse_args(
        ["ingest", "notes.txt", "--persona", "grandma", "--source", "audio"]
    )
    assert args.command == "ingest"
    assert args.file == Path("notes.txt")
    assert args.source == "audio"
    assert args.ref is None


def test_parse_rejects_unknown_source() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["ingest", "notes.txt", "--persona", "p", "--source", "fax"])


def test_command_is_required() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_summary_of_empty_persona(tmp_path: Path, capsys) -> None:
    code = main(["--db", str(tmp_path / "k.db"), "summary", "--persona", "grandma"])

    assert code == 0
    assert "grandma: 0 memories" in capsys.readouterr().out


def test_forget_missing_memory(tmp_path: Path, capsys) -> None:
    code = main(["--db", str(tmp_path / "k.db"), "forget", "mem_missing"])

    assert code == 1
    assert "No memory" in capsys.readouterr().err
