import pytest
import tomli

from lspmux.utils.config import (
    DEFAULT_CONFIG,
    WORKSPACE_CONFIG_NAME,
    get_config_path,
    get_log_dir,
    load_config,
    save_config,
)


class TestLoadConfig:
    def test_defaults(self, isolated_config):
        config = load_config()
        assert config["daemon"]["request_timeout"] == DEFAULT_CONFIG["daemon"]["request_timeout"]
        assert config["resolver"]["tie_break"] == "declaration"
        assert config["servers"] == []

    def test_defaults_are_not_shared(self, isolated_config):
        config = load_config()
        config["daemon"]["request_timeout"] = 1.0
        assert DEFAULT_CONFIG["daemon"]["request_timeout"] == 30.0

    def test_user_config_overrides_defaults(self, isolated_config):
        path = get_config_path()
        path.parent.mkdir(parents=True)
        path.write_text("[daemon]\nrequest_timeout = 12.5\n")

        config = load_config()
        assert config["daemon"]["request_timeout"] == 12.5
        assert config["daemon"]["startup_timeout"] == 60.0

    def test_workspace_config_wins(self, isolated_config, temp_dir):
        path = get_config_path()
        path.parent.mkdir(parents=True)
        path.write_text("[formatting]\ntab_size = 2\ninsert_spaces = false\n")
        project = temp_dir / "project"
        project.mkdir()
        (project / WORKSPACE_CONFIG_NAME).write_text("[formatting]\ntab_size = 8\n")

        config = load_config(project)
        assert config["formatting"]["tab_size"] == 8
        assert config["formatting"]["insert_spaces"] is False

    def test_server_entries_accumulate(self, isolated_config, temp_dir):
        path = get_config_path()
        path.parent.mkdir(parents=True)
        path.write_text('[[servers]]\nname = "pylsp"\ncommand = ["pylsp"]\n')
        project = temp_dir / "project"
        project.mkdir()
        (project / WORKSPACE_CONFIG_NAME).write_text(
            '[[servers]]\nname = "gopls"\ncommand = ["gopls", "-remote=auto"]\n'
        )

        config = load_config(project)
        assert [s["name"] for s in config["servers"]] == ["pylsp", "gopls"]

    def test_timeout_from_environment(self, isolated_config, monkeypatch):
        monkeypatch.setenv("LSPMUX_REQUEST_TIMEOUT", "3")
        assert load_config()["daemon"]["request_timeout"] == 3.0

    def test_bad_timeout_in_environment(self, isolated_config, monkeypatch):
        monkeypatch.setenv("LSPMUX_REQUEST_TIMEOUT", "soon")
        with pytest.raises(ValueError, match="LSPMUX_REQUEST_TIMEOUT"):
            load_config()

    def test_unknown_tie_break(self, isolated_config):
        path = get_config_path()
        path.parent.mkdir(parents=True)
        path.write_text('[resolver]\ntie_break = "random"\n')
        with pytest.raises(ValueError, match="tie_break"):
            load_config()


class TestSaveConfig:
    def test_writes_toml(self, isolated_config):
        path = save_config({"daemon": {"log_level": "debug"}})
        assert path == get_config_path()
        with open(path, "rb") as f:
            assert tomli.load(f) == {"daemon": {"log_level": "debug"}}

    def test_saved_config_is_loaded(self, isolated_config):
        save_config({"resolver": {"tie_break": "prefer_types"}})
        assert load_config()["resolver"]["tie_break"] == "prefer_types"


class TestPaths:
    def test_xdg_dirs(self, isolated_config):
        assert get_config_path() == isolated_config["config"] / "lspmux" / "config.toml"
        assert get_log_dir() == isolated_config["cache"] / "lspmux" / "log"
