from __future__ import annotations

import logging
import os
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from .models import CardFieldVisibility

log = logging.getLogger('gh_project_board')

APP_NAME = "project-hub"
CONFIG_FILE_NAME = "projects-tui.yaml"
LOG_FILE_NAME = "projects-tui.log"
DEFAULT_ITEM_LIMIT = 100


# -----------------------------
# Settings
# -----------------------------
@dataclass
class Config:
    default_project_id: str = ""
    default_owner: str = ""
    suppress_hints: bool = False
    default_item_limit: int = DEFAULT_ITEM_LIMIT
    default_exclude_done: bool = False
    default_iteration_filters: List[str] = field(default_factory=list)
    card_field_visibility: CardFieldVisibility = field(default_factory=CardFieldVisibility)
    theme: str = ""


def user_config_dir() -> Path:
    if sys.platform == "win32":
        base = os.environ.get("APPDATA")
        if base:
            return Path(base)
        return Path.home() / "AppData" / "Roaming"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support"
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg)
    return Path.home() / ".config"


def resolve_path() -> str:
    return str(user_config_dir() / APP_NAME / CONFIG_FILE_NAME)


def default_log_path(config_path: Optional[str] = None) -> str:
    base = Path(config_path or resolve_path()).parent
    return str(base / LOG_FILE_NAME)


def _as_bool(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "y", "on")


def _as_int(value: object, default: int) -> int:
    try:
        parsed = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _visibility_from(raw: object) -> CardFieldVisibility:
    vis = CardFieldVisibility()
    if not isinstance(raw, dict):
        return vis
    for name in asdict(vis):
        if name in raw:
            setattr(vis, name, _as_bool(raw[name], getattr(vis, name)))
    return vis


def load(path: str) -> Config:
    """Read settings; a missing file yields defaults, a malformed one raises ValueError."""
    if not os.path.exists(path):
        return Config()
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"failed to parse config: {e}") from e
    if raw is None:
        return Config()
    if not isinstance(raw, dict):
        raise ValueError(f"failed to parse config: expected a mapping, got {type(raw).__name__}")
    iterations = raw.get("default_iteration_filters") or []
    if isinstance(iterations, str):
        iterations = [p.strip() for p in iterations.split(",") if p.strip()]
    return Config(
        default_project_id=str(raw.get("default_project_id") or ""),
        default_owner=str(raw.get("default_owner") or ""),
        suppress_hints=_as_bool(raw.get("suppress_hints"), False),
        default_item_limit=_as_int(raw.get("default_item_limit"), DEFAULT_ITEM_LIMIT),
        default_exclude_done=_as_bool(raw.get("default_exclude_done"), False),
        default_iteration_filters=[str(v) for v in iterations],
        card_field_visibility=_visibility_from(raw.get("card_field_visibility")),
        theme=str(raw.get("theme") or ""),
    )


def save(path: str, cfg: Config) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(asdict(cfg), f, sort_keys=False, allow_unicode=True)
    log.info("config saved to %s", path)


def save_card_visibility(path: str, vis: CardFieldVisibility) -> None:
    """Overwrite only the visibility flags; a malformed file is left untouched."""
    cfg = load(path)
    cfg.card_field_visibility = CardFieldVisibility(**asdict(vis))
    save(path, cfg)
