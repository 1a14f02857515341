"""Konfiguracja aplikacji."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

DEFAULT_MAX_DEPTH = 384

_SUPPORTED_ENV_KEYS = {
    "VOLUMEANALYZER_MAX_DEPTH",
    "VOLUMEANALYZER_ENCODING",
    "VOLUMEANALYZER_LOG_LEVEL",
    "VOLUMEANALYZER_ERROR_DIR",
}


@dataclass(slots=True)
class AppConfig:
    """Konfiguracja ogólna aplikacji."""

    workspace_dir: Path
    max_depth: int = DEFAULT_MAX_DEPTH
    default_encoding: str | None = None
    log_level: str = "INFO"

    @classmethod
    def default(cls) -> "AppConfig":
        """Tworzy domyślną konfigurację."""

        return cls(workspace_dir=Path.cwd())

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Tworzy konfigurację na podstawie zmiennych środowiskowych.

        - ``VOLUMEANALYZER_MAX_DEPTH``: limit głębokości przeglądania katalogów
        - ``VOLUMEANALYZER_ENCODING``: kodowanie nadpisujące domyślne kodowanie formatu
        - ``VOLUMEANALYZER_LOG_LEVEL``: poziom logowania (np. ``DEBUG``)
        """

        _load_dotenv_if_present()
        config = cls.default()

        raw_depth = (os.getenv("VOLUMEANALYZER_MAX_DEPTH") or "").strip()
        if raw_depth:
            try:
                config.max_depth = max(0, int(raw_depth))
            except ValueError:
                config.max_depth = DEFAULT_MAX_DEPTH

        encoding = (os.getenv("VOLUMEANALYZER_ENCODING") or "").strip()
        config.default_encoding = encoding or None

        level = (os.getenv("VOLUMEANALYZER_LOG_LEVEL") or "").strip()
        if level:
            config.log_level = level.upper()
        return config


def _load_dotenv_if_present() -> None:
    """Best-effort .env loader.

    Rules:
    - Only loads known keys used by this project.
    - Never overwrites variables already present in os.environ.
    - Searches in CWD and (when installed editable) the project root.
    """

    if (os.getenv("VOLUMEANALYZER_DISABLE_DOTENV") or "").strip().lower() in {"1", "true", "yes", "on"}:
        return

    candidates: list[Path] = [Path.cwd() / ".env"]

    try:
        # .../src/volume_analyzer/shared/config.py -> project root is parents[3]
        project_root = Path(__file__).resolve().parents[3]
        candidates.append(project_root / ".env")
    except IndexError:
        pass

    dotenv_path = next((p for p in candidates if p.is_file()), None)
    if dotenv_path is None:
        return

    try:
        lines = dotenv_path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError:
        return

    for raw_line in lines:
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key not in _SUPPORTED_ENV_KEYS:
            continue
        if key in os.environ and os.environ[key].strip():
            continue
        value = value.strip().strip('"').strip("'")
        if value:
            os.environ[key] = value
