"""
app_config.py
Load and save the application-wide config.json.

    {
      "api_key": "...",
      "current_game": "fallout76",
      "game_paths": {"fallout76": "/mnt/games/Fallout76"},
      "compatdata_paths": {"fallout76": "/mnt/games/compatdata/1151340"}
    }

The config is an explicit value: every operation loads it at the start and
passes it down, and commands that change it save it at the end.  There is no
module-level "current config".
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path

from Utils.config_paths import get_app_config_path
from Utils.errors import MalformedDataError, StorageError
from Utils.fileio import write_text_atomic
from Utils.game_loader import DEFAULT_GAME_ID

API_KEY_ENV = "NEXUS_API_KEY"


@dataclass
class AppConfig:
    api_key: str = ""
    current_game: str = DEFAULT_GAME_ID
    game_paths: dict[str, str] = field(default_factory=dict)
    compatdata_paths: dict[str, str] = field(default_factory=dict)

    def game_path_override(self, game_id: str) -> str:
        return self.game_paths.get(game_id, "")

    def compatdata_override(self, game_id: str) -> str:
        return self.compatdata_paths.get(game_id, "")

    def effective_api_key(self) -> str:
        """The NEXUS_API_KEY environment variable wins over the stored key."""
        return os.environ.get(API_KEY_ENV, "").strip() or self.api_key


def _str_map(raw, key: str, path: Path) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in raw.items()
    ):
        raise MalformedDataError(f"'{key}' in {path} must map strings to strings", path)
    return dict(raw)


def load_config(path: Path | None = None) -> AppConfig:
    """Read config.json; a missing file yields the default config."""
    path = path or get_app_config_path()
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return AppConfig()
    except OSError as exc:
        raise StorageError(f"failed to open config file {path}: {exc}", path) from exc

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedDataError(f"failed to decode config file {path}: {exc}", path) from exc
    if not isinstance(data, dict):
        raise MalformedDataError(f"config file {path} must contain a JSON object", path)

    return AppConfig(
        api_key=str(data.get("api_key") or ""),
        current_game=str(data.get("current_game") or DEFAULT_GAME_ID),
        game_paths=_str_map(data.get("game_paths"), "game_paths", path),
        compatdata_paths=_str_map(data.get("compatdata_paths"), "compatdata_paths", path),
    )


def save_config(config: AppConfig, path: Path | None = None) -> None:
    """Write config.json atomically."""
    path = path or get_app_config_path()
    write_text_atomic(path, json.dumps(asdict(config), indent=2) + "\n")
