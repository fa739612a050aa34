from __future__ import annotations

from pathlib import Path
import tomllib

__version__ = "0.1.0"


def get_runtime_version() -> str:
    candidates = [
        Path.cwd() / "pyproject.toml",
        Path(__file__).resolve().parents[2] / "pyproject.toml",
    ]

    seen: set[Path] = set()
    for path in candidates:
        if path in seen:
            continue
        seen.add(path)
        if not path.exists():
            continue
        try:
            data = tomllib.loads(path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError):
            continue
        if str((data.get("project", {}) or {}).get("name", "")).strip() != "clausewatch":
            continue
        version = str((data.get("project", {}) or {}).get("version", "")).strip()
        if version:
            return version
    return __version__


__all__ = ["__version__", "get_runtime_version"]
