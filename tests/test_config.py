"""Tests for config loading and saving."""

import json

import pytest

from bn_loader.config import (
    CONFIG_ENV_VAR,
    DEFAULT_BACKUP_RETENTION,
    DEFAULT_EXECUTABLE,
    Config,
    GlobalConfig,
    Profile,
    config_path,
    is_valid_profile_name,
    load_config,
    save_config,
)
from bn_loader.errors import ConfigError
from bn_loader.patterns import DEFAULT_EXCLUSIONS


@pytest.fixture
def sample_config(tmp_path):
    return Config(
        global_=GlobalConfig(default_profile="main", backup_retention=2, backup_dir="~/bn-backups"),
        profiles={
            "main": Profile(name="main", install_dir="/opt/binaryninja", config_dir="~/.binaryninja"),
            "scratch": Profile(
                name="scratch",
                install_dir="/opt/binaryninja-dev",
                config_dir=str(tmp_path / "scratch"),
                executable="binaryninja-dev",
                debug=True,
            ),
        },
    )


class TestConfig:
    def test_load_missing_file(self, tmp_path):
        config = load_config(tmp_path / "nonexistent.json")
        assert config.profiles == {}
        assert config.global_.backup_retention == DEFAULT_BACKUP_RETENTION
        assert config.sync.exclusions == list(DEFAULT_EXCLUSIONS)

    def test_save_and_load_roundtrip(self, tmp_path, sample_config):
        path = tmp_path / "config.json"
        save_config(sample_config, path)
        loaded = load_config(path)

        assert loaded.global_.default_profile == "main"
        assert loaded.global_.backup_retention == 2
        assert list(loaded.profiles) == ["main", "scratch"]
        assert loaded.profiles["main"].executable == DEFAULT_EXECUTABLE
        assert loaded.profiles["scratch"].executable == "binaryninja-dev"
        assert loaded.profiles["scratch"].debug is True

    def test_default_executable_not_written(self, tmp_path, sample_config):
        path = tmp_path / "config.json"
        save_config(sample_config, path)
        data = json.loads(path.read_text())
        assert "executable" not in data["profiles"]["main"]
        assert "debug" not in data["profiles"]["main"]

    def test_paths_expand_user(self, sample_config):
        main = sample_config.profiles["main"]
        assert main.data_path.is_absolute()
        assert str(main.data_path).endswith(".binaryninja")
        assert sample_config.global_.backup_path.is_absolute()

    def test_require_profile(self, sample_config):
        assert sample_config.require_profile("main").name == "main"
        assert sample_config.get_profile("nope") is None
        with pytest.raises(ConfigError, match="Profile 'nope' not found"):
            sample_config.require_profile("nope")

    def test_other_profiles(self, sample_config):
        assert [p.name for p in sample_config.other_profiles("main")] == ["scratch"]

    def test_exclusion_set(self, sample_config):
        sample_config.sync.exclusions.append("snippets/private_*")
        exclusions = sample_config.exclusion_set(["*.log"])
        texts = list(exclusions.patterns)
        assert texts[: len(DEFAULT_EXCLUSIONS)] == list(DEFAULT_EXCLUSIONS)
        assert texts[-2:] == ["snippets/private_*", "*.log"]
        assert exclusions.matches("plugins/debug.log")

    def test_save_creates_parent_dirs(self, tmp_path):
        path = tmp_path / "deep" / "nested" / "config.json"
        save_config(Config(), path)
        assert path.exists()


class TestConfigErrors:
    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="Failed to read config file"):
            load_config(path)

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[]")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_profile_missing_config_dir(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"profiles": {"main": {"install_dir": "/opt/bn"}}}))
        with pytest.raises(ConfigError, match="Profile 'main' is missing config_dir"):
            load_config(path)

    @pytest.mark.parametrize("value", [-1, "5", True])
    def test_bad_retention(self, tmp_path, value):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"global": {"backup_retention": value}}))
        with pytest.raises(ConfigError, match="backup_retention"):
            load_config(path)

    def test_exclusions_must_be_list(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"sync": {"exclusions": "*.pyc"}}))
        with pytest.raises(ConfigError, match="sync.exclusions"):
            load_config(path)


class TestConfigPath:
    def test_explicit_path_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "env.json"))
        assert config_path(tmp_path / "cli.json") == tmp_path / "cli.json"

    def test_env_var(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "env.json"))
        assert config_path() == tmp_path / "env.json"

    def test_default(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        assert config_path().name == "config.json"


@pytest.mark.parametrize(
    "name,valid",
    [("main", True), ("re-2024_dev", True), ("", False), ("has space", False), ("../up", False)],
)
def test_profile_names(name, valid):
    assert is_valid_profile_name(name) is valid


@pytest.mark.parametrize("name", ["../x", "a/b", "with space"])
def test_invalid_profile_name_in_file(tmp_path, name):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps({"profiles": {name: {"install_dir": "/opt/bn", "config_dir": str(tmp_path / "p")}}})
    )
    with pytest.raises(ConfigError, match="Invalid profile name"):
        load_config(path)
