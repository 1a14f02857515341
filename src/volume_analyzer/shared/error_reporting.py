from __future__ import annotations

import faulthandler
import json
import os
import platform
import sys
import threading
import traceback
from dataclasses import dataclass
from datetime import datetime, timezone
from importlib import metadata
from pathlib import Path
from typing import Any, TextIO
from uuid import uuid4


@dataclass(frozen=True, slots=True)
class ErrorReport:
    path: Path
    created_at: datetime


_ORIGINAL_SYS_EXCEPTHOOK = None
_FAULTHANDLER_FILE: TextIO | None = None


def get_error_reports_dir() -> Path:
    """Returns a writable directory for error reports.

    Priority:
    1) `VOLUMEANALYZER_ERROR_DIR` env var
    2) Project root: `./error_reports` (next to `pyproject.toml`)
    3) Fallback: `~/.volume_analyzer/error_reports`
    """

    override = (os.getenv("VOLUMEANALYZER_ERROR_DIR") or "").strip()
    base: Path
    if override:
        base = Path(override)
    else:
        project_root = _find_project_root()
        if project_root is not None:
            base = project_root / "error_reports"
        else:
            base = Path.home() / ".volume_analyzer" / "error_reports"

    base.mkdir(parents=True, exist_ok=True)
    return base


def _find_project_root() -> Path | None:
    """Returns the nearest directory containing `pyproject.toml` (best-effort)."""

    for start in (Path.cwd(), Path(__file__).resolve().parent):
        current = start
        for _ in range(25):
            if (current / "pyproject.toml").is_file():
                return current
            if current.parent == current:
                break
            current = current.parent
    return None


def _safe_app_version() -> str:
    try:
        return metadata.version("volume-analyzer")
    except metadata.PackageNotFoundError:
        return "unknown"


def write_error_report(
    error: BaseException,
    *,
    where: str,
    context: dict[str, Any] | None = None,
) -> ErrorReport:
    """Writes a timestamped error report and returns its path.

    The context typically names the image and partition being processed so a
    failing batch run can be reproduced.
    """

    reports_dir = get_error_reports_dir()
    created_at = datetime.now(timezone.utc)
    stamp = created_at.strftime("%Y%m%d_%H%M%S")
    path = reports_dir / f"error_{stamp}_{uuid4().hex[:8]}.txt"

    header = {
        "created_at": created_at.isoformat(),
        "where": where,
        "app_version": _safe_app_version(),
        "python": sys.version.replace("\n", " "),
        "platform": platform.platform(),
        "cwd": str(Path.cwd()),
        "context": dict(context or {}),
        "error_type": type(error).__name__,
        "error_message": str(error),
    }

    tb = "".join(traceback.format_exception(type(error), error, error.__traceback__))

    content = (
        "VolumeAnalyzer Error Report\n"
        "===========================\n\n"
        + json.dumps(header, ensure_ascii=False, indent=2, default=str)
        + "\n\nTraceback\n---------\n"
        + tb
    )

    path.write_text(content, encoding="utf-8", errors="replace")
    return ErrorReport(path=path, created_at=created_at)


def install_crash_reporting(*, enable_faulthandler: bool = True) -> None:
    """Installs best-effort crash reporting.

    Covers unhandled exceptions in the main thread (`sys.excepthook`), in
    background threads (`threading.excepthook`) and native crashes through
    `faulthandler`.

    Notes:
    - Never raises; failures here must not prevent app startup.
    - Can be disabled with `VOLUMEANALYZER_DISABLE_CRASH_HOOKS=1`.
    """

    if (os.getenv("VOLUMEANALYZER_DISABLE_CRASH_HOOKS") or "").strip().lower() in {"1", "true", "yes", "on"}:
        return

    # Test runs keep the default hooks unless explicitly enabled.
    if os.getenv("PYTEST_CURRENT_TEST") and (os.getenv("VOLUMEANALYZER_ENABLE_CRASH_HOOKS") or "").strip() != "1":
        return

    global _ORIGINAL_SYS_EXCEPTHOOK
    if _ORIGINAL_SYS_EXCEPTHOOK is None:
        _ORIGINAL_SYS_EXCEPTHOOK = sys.excepthook

    def _sys_excepthook(exc_type, exc, tb):  # type: ignore[no-untyped-def]
        try:
            write_error_report(
                exc if isinstance(exc, BaseException) else RuntimeError(str(exc)),
                where="sys.excepthook",
                context={"exc_type": getattr(exc_type, "__name__", str(exc_type))},
            )
        except OSError:
            pass
        if _ORIGINAL_SYS_EXCEPTHOOK is not None:
            _ORIGINAL_SYS_EXCEPTHOOK(exc_type, exc, tb)

    sys.excepthook = _sys_excepthook

    original_threading_hook = threading.excepthook

    def _threading_excepthook(args):  # type: ignore[no-untyped-def]
        try:
            write_error_report(
                args.exc_value if args.exc_value is not None else RuntimeError("unknown thread error"),
                where="threading.excepthook",
                context={
                    "thread": getattr(args.thread, "name", None),
                    "exc_type": getattr(args.exc_type, "__name__", str(args.exc_type)),
                },
            )
        except OSError:
            pass
        original_threading_hook(args)

    threading.excepthook = _threading_excepthook

    if enable_faulthandler:
        global _FAULTHANDLER_FILE
        try:
            if _FAULTHANDLER_FILE is None:
                stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
                path = get_error_reports_dir() / f"fatal_{stamp}_{uuid4().hex[:8]}.log"
                _FAULTHANDLER_FILE = open(path, "w", encoding="utf-8", errors="replace")
            faulthandler.enable(file=_FAULTHANDLER_FILE, all_threads=True)
        except OSError:
            pass
