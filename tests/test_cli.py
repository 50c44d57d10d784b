"""Tests for the command-line entry point."""

import json

from shelf_catalog.cli import build_parser, main


def test_parser_subcommands():
    args = build_parser().parse_args(["detect", "a.jpg", "b.jpg", "--family-id", "fam", "--output", "out.json"])
    assert args.images == ["a.jpg", "b.jpg"]
    assert args.family_id == "fam"
    assert args.output == "out.json"

    args = build_parser().parse_args(["search", "הארי פוטר", "--provider", "simania", "--max-results", "3"])
    assert (args.query, args.provider, args.max_results) == ("הארי פוטר", "simania", 3)


def test_bulk_add_command(tmp_path, monkeypatch, capsys):
    db = tmp_path / "catalog.db"
    monkeypatch.setenv("CATALOG_DB_PATH", str(db))
    books = tmp_path / "books.json"
    books.write_text(json.dumps({"books": [{"title": "Dune", "author": "Frank Herbert"}, {"title": ""}]}),
                     encoding="utf-8")

    code = main(["--env-file", "", "bulk-add", str(books), "--family-id", "fam"])

    out = json.loads(capsys.readouterr().out)
    assert code == 1
    assert (out["added"], out["failed"]) == (1, 1)
    assert db.exists()


def test_bulk_add_command_rejects_oversized_file(tmp_path, monkeypatch):
    monkeypatch.setenv("CATALOG_DB_PATH", str(tmp_path / "catalog.db"))
    books = tmp_path / "books.json"
    books.write_text(json.dumps([{"title": f"b{i}"} for i in range(51)]), encoding="utf-8")
    assert main(["--env-file", "", "bulk-add", str(books), "--family-id", "fam"]) == 2
