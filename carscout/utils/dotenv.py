"""Minimal .env loader for carscout.

Relay credentials usually live in a `.env` file next to pyproject.toml rather
than in the shell environment. Values already present in os.environ win.
"""

from __future__ import annotations

import os
from pathlib import Path

# Short variable names accepted alongside the CARSCOUT_* form.
ENV_ALIASES: dict[str, str] = {
    "BRIGHTDATA_TOKEN": "CARSCOUT_RELAY__TOKEN",
    "BRIGHTDATA_ZONE": "CARSCOUT_RELAY__ZONE",
    "YAD2_BUILD_ID": "CARSCOUT_MARKETPLACE__DEFAULT_BUILD_ID",
}


def _find_project_root(start: Path) -> Path:
    cur = start
    while True:
        if (cur / "pyproject.toml").exists():
            return cur
        if cur.parent == cur:
            return start
        cur = cur.parent


def _parse_line(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if not line or line.startswith("#"):
        return None
    if line.startswith("export "):
        line = line[len("export ") :].lstrip()
    if "=" not in line:
        return None
    key, value = line.split("=", 1)
    key = key.strip()
    value = value.strip()
    if not key:
        return None
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    return key, value


def apply_env_aliases() -> None:
    """Copy short-form variables onto their CARSCOUT_* names (never overwriting)."""
    for alias, target in ENV_ALIASES.items():
        if alias in os.environ and target not in os.environ:
            os.environ[target] = os.environ[alias]


def load_dotenv_if_present(*, dotenv_path: Path | None = None) -> bool:
    """Load `.env` into os.environ.

    Rules:
    - Ignores blank lines and comments.
    - Supports optional leading `export `.
    - Strips one pair of matching single/double quotes.
    - Does NOT overwrite existing os.environ entries.

    Returns:
        True if a dotenv file existed and was read, else False.
    """
    if dotenv_path is None:
        root = _find_project_root(Path(__file__).resolve())
        dotenv_path = root / ".env"

    found = dotenv_path.exists()
    if found:
        try:
            lines = dotenv_path.read_text(encoding="utf-8").splitlines()
        except OSError:
            lines = []
        for raw_line in lines:
            parsed = _parse_line(raw_line)
            if parsed is None:
                continue
            key, value = parsed
            os.environ.setdefault(key, value)

    apply_env_aliases()
    return found
