import yaml

from dockscope.config import AppConfig, ConfigManager


def test_defaults_when_file_missing(tmp_path):
    manager = ConfigManager(tmp_path / "missing.yaml")
    config = manager.load_config()
    assert config.ui.refresh_interval == 2.0
    assert config.ui.history_size == 120
    assert config.keybindings.filter == "/"


def test_user_values_override_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "ui": {"refresh_interval": 5, "default_view": "compose"},
        "keybindings": {"stop": "k"},
        "docker": {"stop_timeout": 3},
    }))
    config = ConfigManager(path).load_config()

    assert config.ui.refresh_interval == 5
    assert config.ui.default_view == "compose"
    assert config.ui.stats_interval == 1.0
    assert config.keybindings.stop == "k"
    assert config.keybindings.pause == "p"
    assert config.docker.stop_timeout == 3


def test_unknown_keys_ignored(tmp_path, caplog):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"ui": {"colour": "red"}, "extra": {"a": 1}}))
    config = ConfigManager(path).load_config()
    assert not hasattr(config.ui, "colour")
    assert "colour" in caplog.text


def test_invalid_yaml_falls_back(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("ui: [unclosed")
    config = ConfigManager(path).load_config()
    assert config == AppConfig()


def test_non_mapping_falls_back(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")
    assert ConfigManager(path).load_config() == AppConfig()


def test_save_and_reload(tmp_path):
    path = tmp_path / "nested" / "config.yaml"
    manager = ConfigManager(path)
    config = manager.load_config()
    config.ui.log_tail = 42
    manager.save_config()

    assert path.exists()
    assert ConfigManager(path).load_config().ui.log_tail == 42


def test_is_key_is_case_insensitive():
    config = AppConfig()
    assert config.is_key("D", "describe")
    assert config.is_key("ctrl+d", "remove")
    assert not config.is_key("d", "remove")
    assert not config.is_key("d", "no_such_action")
