import json

import pytest

from voicenote.config import API_KEY_ENV, Config


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    # Keep the project-root .env/settings.json and the real key out of tests
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv(API_KEY_ENV, raising=False)


def make_cfg(tmp_path):
    return Config.load(tmp_path / "home")


def test_defaults_present(tmp_path):
    cfg = make_cfg(tmp_path)
    assert cfg.api_key is None
    assert cfg.model == "gemini-2.5-flash"
    assert cfg.merge_policy == "individual"
    assert cfg.sample_rate == 16000
    assert cfg.max_recording_seconds == 600.0
    assert (tmp_path / "home").is_dir()


def test_env_file_key(tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    (home / ".env").write_text('# comment\nOTHER=1\nGEMINI_API_KEY="abc123"\n')

    assert make_cfg(tmp_path).api_key == "abc123"


def test_environment_overrides_env_file(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    (home / ".env").write_text("GEMINI_API_KEY=from-file\n")
    monkeypatch.setenv(API_KEY_ENV, "from-env")

    assert make_cfg(tmp_path).api_key == "from-env"


def test_project_env_file_is_read(tmp_path):
    (tmp_path / ".env").write_text("GEMINI_API_KEY=project-key\n")

    assert make_cfg(tmp_path).api_key == "project-key"


def test_settings_file_values_and_coercion(tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    with open(home / "settings.json", "w") as f:
        json.dump({
            "model": "gemini-2.5-pro",
            "merge_policy": "merged",
            "sample_rate": "44100",
            "unknown": True,
        }, f)

    cfg = make_cfg(tmp_path)
    assert cfg.model == "gemini-2.5-pro"
    assert cfg.merge_policy == "merged"
    assert cfg.sample_rate == 44100


def test_home_settings_override_project_settings(tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    (tmp_path / "settings.json").write_text(json.dumps({"model": "gemini-2.0-flash", "merge_policy": "merged"}))
    (home / "settings.json").write_text(json.dumps({"model": "gemini-2.5-flash-lite"}))

    cfg = make_cfg(tmp_path)
    assert cfg.model == "gemini-2.5-flash-lite"
    assert cfg.merge_policy == "merged"


def test_invalid_settings_are_ignored(tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    (home / "settings.json").write_text(json.dumps({"merge_policy": "sideways", "sample_rate": "fast"}))

    cfg = make_cfg(tmp_path)
    assert cfg.merge_policy == "individual"
    assert cfg.sample_rate == 16000


def test_corrupt_settings_file_keeps_defaults(tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    (home / "settings.json").write_text("{not json")

    assert make_cfg(tmp_path).model == "gemini-2.5-flash"


def test_set_merge_policy_rejects_unknown(tmp_path):
    cfg = make_cfg(tmp_path)
    with pytest.raises(ValueError):
        cfg.set_merge_policy("sideways")
    assert cfg.merge_policy == "individual"


def test_save_and_reload(tmp_path):
    cfg = make_cfg(tmp_path)
    cfg.set_api_key("  saved-key  ")
    cfg.set_model("gemini-2.5-pro")
    cfg.set_merge_policy("merged")
    cfg.save_settings()
    cfg.save_api_key()

    reloaded = make_cfg(tmp_path)
    assert reloaded.api_key == "saved-key"
    assert reloaded.model == "gemini-2.5-pro"
    assert reloaded.merge_policy == "merged"


def test_save_settings_keeps_unknown_keys(tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    (home / "settings.json").write_text(json.dumps({"theme": "dark"}))

    cfg = make_cfg(tmp_path)
    cfg.save_settings()

    data = json.loads((home / "settings.json").read_text())
    assert data["theme"] == "dark"
    assert data["merge_policy"] == "individual"


def test_clear_api_key_preserves_other_lines(tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    (home / ".env").write_text("OTHER=1\nGEMINI_API_KEY=old\n")

    cfg = make_cfg(tmp_path)
    cfg.clear_api_key()
    cfg.save_api_key()

    assert (home / ".env").read_text() == "OTHER=1\n"
    assert make_cfg(tmp_path).api_key is None


def test_snapshot_is_immutable_copy(tmp_path):
    cfg = make_cfg(tmp_path)
    cfg.set_api_key("k-1")
    snap = cfg.snapshot()

    cfg.set_merge_policy("merged")
    cfg.clear_api_key()

    assert snap.api_key == "k-1"
    assert snap.merge_policy == "individual"
    assert snap.has_credentials is True
    assert cfg.snapshot().has_credentials is False
    with pytest.raises(AttributeError):
        snap.model = "other"
