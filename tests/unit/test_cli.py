import json

import pytest

from curator import cli
from curator.library_db import connect
from curator.local_library_client import LocalLibraryClient
from conftest import make_track


@pytest.fixture(autouse=True)
def _no_logging_setup(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)


def _config(tmp_path, tracks=()):
    db_path = tmp_path / "library.db"
    conn = connect(str(db_path))
    LocalLibraryClient(str(db_path), conn=conn).upsert_tracks(tracks)
    conn.close()
    path = tmp_path / "config.yaml"
    path.write_text(
        "library:\n"
        f"  database_path: {db_path.as_posix()}\n"
        "playlists:\n"
        "  target_size: 5\n"
        "  exploration_rate: 0.0\n"
        "genre:\n"
        f"  similarity_file: {(tmp_path / 'none.yaml').as_posix()}\n"
        "  cache_file: null\n",
        encoding="utf-8",
    )
    return str(path)


def test_strategies(capsys):
    assert cli.main(["strategies"]) == 0
    out = capsys.readouterr().out
    assert "Recent Favorites" in out
    assert "Nostalgia" in out


def test_strategies_json(capsys):
    assert cli.main(["strategies", "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert [s["id"] for s in data] == ["balanced", "quality", "discovery", "throwback"]


def test_missing_config(tmp_path, capsys):
    assert cli.main(["--config", str(tmp_path / "nope.yaml"), "run", "morning"]) == 1
    assert "not found" in capsys.readouterr().out


def test_run_dry_run(tmp_path, capsys, monkeypatch):
    monkeypatch.delenv("CURATOR_DB_PATH", raising=False)
    tracks = [make_track(f"t{i}", artist=f"Artist {i}", genres=(f"g{i}",)) for i in range(8)]
    assert cli.main(["--config", _config(tmp_path, tracks), "run", "evening", "--dry-run"]) == 0
    assert "Evening Mix" in capsys.readouterr().out


def test_run_empty_library(tmp_path, capsys, monkeypatch):
    monkeypatch.delenv("CURATOR_DB_PATH", raising=False)
    assert cli.main(["--config", _config(tmp_path), "run", "morning"]) == 2
    assert "Error" in capsys.readouterr().out


def test_unknown_window_is_rejected():
    with pytest.raises(SystemExit):
        cli.main(["run", "brunch"])
