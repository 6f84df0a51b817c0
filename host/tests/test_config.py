from pathlib import Path

from scraper_host.core import config


def setup_function(function):
    config.get_settings.cache_clear()


def teardown_function(function):
    config.get_settings.cache_clear()


def test_get_settings_reads_env(monkeypatch, tmp_path):
    monkeypatch.setenv("SCRAPER_USER_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("SCRAPER_DOCUMENTS_DIR", str(tmp_path / "docs"))
    monkeypatch.setenv("SCRAPER_WORKER_COMMAND", "python -u worker.py")
    monkeypatch.setenv("SCRAPER_WORKER_WORKDIR", str(tmp_path / "work"))
    monkeypatch.setenv("SCRAPER_PORT", "9100")
    monkeypatch.setenv("SCRAPER_RESULT_READ_ATTEMPTS", "5")

    settings = config.get_settings()

    assert settings.user_data_dir == tmp_path / "data"
    assert settings.documents_dir == tmp_path / "docs"
    assert settings.fallback_config_dir == tmp_path / "docs" / "BusinessScraper"
    assert settings.preferences_path == tmp_path / "data" / "preferences.json"
    assert settings.worker_command == ("python", "-u", "worker.py")
    assert settings.worker_workdir == tmp_path / "work"
    assert settings.server_port == 9100
    assert settings.result_read_attempts == 5


def test_get_settings_defaults_and_warns(monkeypatch, caplog, tmp_path):
    for name in (
        "SCRAPER_USER_DATA_DIR",
        "SCRAPER_DOCUMENTS_DIR",
        "SCRAPER_WORKER_COMMAND",
        "SCRAPER_WORKER_WORKDIR",
        "SCRAPER_PORT",
        "SCRAPER_RESULT_READ_ATTEMPTS",
        "APPDATA",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("PATH", str(tmp_path))

    with caplog.at_level("WARNING"):
        settings = config.get_settings()

    assert "Worker executable business_scraper was not found" in " ".join(caplog.messages)
    assert settings.user_data_dir == tmp_path / "xdg" / "business-scraper"
    assert settings.documents_dir == Path.home() / "Documents"
    assert settings.worker_command == ("business_scraper",)
    assert settings.worker_workdir is None
    assert settings.server_port == 9000
    assert settings.result_read_attempts == 3


def test_parse_worker_command_falls_back_to_default():
    assert config.parse_worker_command("   ") == ("business_scraper",)
