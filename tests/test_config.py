import pytest

from config_loader import (
    ConfigLoader,
    get_config,
    get_default_mode_config,
    get_logging_config,
    get_reasoning_config,
    get_scheduler_config,
    get_state_config,
    local_override_path,
    reload_config,
)

SAMPLE = """
reasoning:
  base_url: http://localhost:3000
  history_limit: 20
  reflection: false
scheduler:
  tick_hz: 30
default_mode:
  idle_threshold_ticks: 120
  seed: 42
"""


@pytest.fixture
def loader(tmp_path, monkeypatch):
    for var in ("MIND_REASONING_URL", "MIND_API_TOKEN", "MIND_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(SAMPLE, encoding="utf-8")
    return ConfigLoader(str(path))


def test_dotted_access_and_defaults(loader):
    assert loader.get("scheduler.tick_hz") == 30
    assert loader.get("scheduler.missing", "fallback") == "fallback"
    assert loader.get_section("default_mode")["seed"] == 42
    assert loader.get_section("nothing") == {}


def test_env_overrides_file(loader, monkeypatch):
    monkeypatch.setenv("MIND_REASONING_URL", "http://elsewhere")
    monkeypatch.setenv("MIND_LOG_LEVEL", "debug")

    assert get_reasoning_config(loader)["base_url"] == "http://elsewhere"
    assert get_logging_config(loader)["level"] == "DEBUG"


def test_typed_accessors(loader):
    reasoning = get_reasoning_config(loader)
    assert reasoning["history_limit"] == 20
    assert reasoning["reflection"] is False
    assert reasoning["api_token"] is None
    assert reasoning["think_path"] == "/api/mind/think"

    assert get_scheduler_config(loader) == {"tick_hz": 30.0, "debug_history": 0}
    assert get_state_config(loader)["damping"] == 0.1
    mode = get_default_mode_config(loader)
    assert mode["idle_threshold_ticks"] == 120
    assert mode["base_cooldown_seconds"] == 8.0
    assert mode["seed"] == 42


def test_required_value_missing(tmp_path, monkeypatch):
    monkeypatch.delenv("MIND_REASONING_URL", raising=False)
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")

    with pytest.raises(ValueError, match="reasoning.base_url"):
        get_reasoning_config(ConfigLoader(str(path)))


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ConfigLoader(str(tmp_path / "nope.yaml"))


def test_invalid_yaml(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("reasoning: [unclosed", encoding="utf-8")
    with pytest.raises(ValueError):
        ConfigLoader(str(path))


def test_local_config_wins_and_reload(tmp_path, monkeypatch):
    (tmp_path / "config.yaml").write_text("scheduler:\n  tick_hz: 10\n", encoding="utf-8")
    local = tmp_path / "config.local.yaml"
    local.write_text("scheduler:\n  tick_hz: 20\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    config = get_config()
    assert config.get("scheduler.tick_hz") == 20
    assert get_config() is config

    local.write_text("scheduler:\n  tick_hz: 25\n", encoding="utf-8")
    reload_config()
    assert get_config().get("scheduler.tick_hz") == 25


def test_top_level_must_be_a_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError, match="mapping"):
        ConfigLoader(str(path))


def test_local_override_for_custom_path(tmp_path):
    (tmp_path / "mind.yaml").write_text("scheduler:\n  tick_hz: 10\n", encoding="utf-8")
    (tmp_path / "mind.local.yaml").write_text("scheduler:\n  tick_hz: 15\n", encoding="utf-8")

    assert local_override_path(tmp_path / "mind.yaml") == tmp_path / "mind.local.yaml"
    assert get_config(tmp_path / "mind.yaml").get("scheduler.tick_hz") == 15


def test_empty_env_var_still_fails_required(loader, monkeypatch):
    monkeypatch.setenv("MIND_REASONING_URL", "")
    with pytest.raises(ValueError):
        get_reasoning_config(loader)
