import pytest

from curator.config_loader import Config
from curator.exceptions import ConfigurationError


def _write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_loads_yaml_with_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("CURATOR_DB_PATH", raising=False)
    config = Config(_write(tmp_path, "library:\n  database_path: lib.db\n"))
    assert config.library_database_path == "lib.db"
    assert config.target_size == 50
    assert config.max_per_artist == 2
    assert config.max_genre_share == pytest.approx(0.4)
    assert config.exploration_rate is None
    assert config.random_seed is None
    assert config.discovery_enabled is True
    assert config.discovery_min_days_since_play == 90
    assert config.genre_similarity_threshold == pytest.approx(0.5)
    settings = config.scoring_settings()
    assert settings.half_life_days == 7
    assert (settings.lookback_start, settings.lookback_end) == (730, 1825)


def test_nested_overrides():
    config = Config(data={
        "library": {"database_path": "lib.db"},
        "scoring": {"half_life_days": 14, "play_count_saturation": 50},
        "playlists": {
            "target_size": 30,
            "exploration_rate": 0.1,
            "discovery": {"enabled": False, "min_days_since_play": 120},
            "throwback": {"lookback_start": 365, "lookback_end": 1095, "recent_exclusion": 60},
        },
    })
    assert config.target_size == 30
    assert config.exploration_rate == pytest.approx(0.1)
    assert config.discovery_enabled is False
    assert config.discovery_min_days_since_play == 120
    assert config.throwback_recent_exclusion == 60
    settings = config.scoring_settings()
    assert settings.half_life_days == 14
    assert settings.play_count_saturation == 50
    assert (settings.lookback_start, settings.lookback_end) == (365, 1095)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        Config(str(tmp_path / "nope.yaml"))


def test_missing_database_path(monkeypatch):
    monkeypatch.delenv("CURATOR_DB_PATH", raising=False)
    with pytest.raises(ConfigurationError):
        Config(data={})
    with pytest.raises(ConfigurationError):
        Config(data={"library": {}})


def test_env_overrides_database_path(monkeypatch):
    monkeypatch.setenv("CURATOR_DB_PATH", "/tmp/env.db")
    config = Config(data={})
    assert config.library_database_path == "/tmp/env.db"


@pytest.mark.parametrize("section, values", [
    ("scoring", {"half_life_days": 0}),
    ("scoring", {"play_count_saturation": 0}),
    ("scoring", {"max_skip_penalty": 1.5}),
    ("playlists", {"throwback": {"lookback_start": 900, "lookback_end": 800}}),
    ("playlists", {"target_size": -1}),
    ("playlists", {"max_genre_share": 2}),
    ("playlists", {"exploration_rate": 1.2}),
])
def test_invalid_values(section, values):
    data = {"library": {"database_path": "lib.db"}, section: values}
    with pytest.raises(ConfigurationError):
        Config(data=data)


def test_non_mapping_root(tmp_path):
    with pytest.raises(ConfigurationError):
        Config(_write(tmp_path, "- just\n- a list\n"))
