"""Testy konfiguracji aplikacji."""

from __future__ import annotations

from pathlib import Path

from volume_analyzer.shared.config import DEFAULT_MAX_DEPTH, AppConfig


def test_default_config() -> None:
    config = AppConfig.default()

    assert config.workspace_dir == Path.cwd()
    assert config.max_depth == DEFAULT_MAX_DEPTH
    assert config.default_encoding is None
    assert config.log_level == "INFO"


def test_config_from_env(monkeypatch) -> None:
    monkeypatch.setenv("VOLUMEANALYZER_MAX_DEPTH", "3")
    monkeypatch.setenv("VOLUMEANALYZER_ENCODING", "cp437")
    monkeypatch.setenv("VOLUMEANALYZER_LOG_LEVEL", "debug")

    config = AppConfig.from_env()

    assert config.max_depth == 3
    assert config.default_encoding == "cp437"
    assert config.log_level == "DEBUG"


def test_invalid_depth_falls_back_to_default(monkeypatch) -> None:
    monkeypatch.setenv("VOLUMEANALYZER_MAX_DEPTH", "deep")

    assert AppConfig.from_env().max_depth == DEFAULT_MAX_DEPTH


def test_negative_depth_is_clamped(monkeypatch) -> None:
    monkeypatch.setenv("VOLUMEANALYZER_MAX_DEPTH", "-5")

    assert AppConfig.from_env().max_depth == 0


def test_dotenv_is_loaded_without_overriding(monkeypatch, tmp_path) -> None:
    (tmp_path / ".env").write_text(
        "# lokalne ustawienia\nVOLUMEANALYZER_ENCODING=\"cp850\"\nVOLUMEANALYZER_LOG_LEVEL=warning\nOTHER=1\n",
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("VOLUMEANALYZER_DISABLE_DOTENV")
    monkeypatch.delenv("OTHER", raising=False)
    # Puste wartości są nadpisywalne; monkeypatch przywróci środowisko po teście.
    monkeypatch.setenv("VOLUMEANALYZER_ENCODING", "")
    monkeypatch.setenv("VOLUMEANALYZER_LOG_LEVEL", "error")

    config = AppConfig.from_env()

    assert config.default_encoding == "cp850"
    assert config.log_level == "ERROR"
