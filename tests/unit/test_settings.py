from pathlib import Path

from mcadmin.utils.settings import get_settings, refresh_settings_cache


def test_settings_read_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("MODEL_CONFIG_DIR", str(tmp_path))
    monkeypatch.setenv("DEFAULT_PAGE_SIZE", "5")
    monkeypatch.setenv("MAX_PAGE_SIZE", "50")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    refresh_settings_cache()
    s = get_settings()
    assert s.model_config_dir == tmp_path
    assert s.connections_file == tmp_path / "connections.json"
    assert s.default_page_size == 5
    assert s.max_page_size == 50
    assert s.log_level == "DEBUG"
    assert s.widget_template_dir is None


def test_invalid_page_sizes_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("DEFAULT_PAGE_SIZE", "abc")
    monkeypatch.setenv("MAX_PAGE_SIZE", "-3")
    refresh_settings_cache()
    s = get_settings()
    assert s.default_page_size == 20
    assert s.max_page_size == 500


def test_settings_are_cached_until_refreshed(monkeypatch):
    first = get_settings()
    monkeypatch.setenv("DB_CONNECTIONS_FILE", "/etc/mcadmin/connections.json")
    assert get_settings() is first
    refresh_settings_cache()
    assert get_settings().connections_file == Path("/etc/mcadmin/connections.json")
