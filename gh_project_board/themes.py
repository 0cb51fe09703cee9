from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import yaml

log = logging.getLogger('gh_project_board')


# -----------------------------
# Themes
# -----------------------------
@dataclass
class ThemePreset:
    name: str
    style: Dict[str, str]
    description: Optional[str] = None


BASE_THEME_STYLE: Dict[str, str] = {
    'header': 'bg:#1c1c1c #f0f0f0',
    'header.project': 'bold #ffd75f',
    'header.view': '#8a8a8a',
    'header.view.active': 'bold reverse #87d7ff',
    'header.filter': '#87d7ff',
    'column.title': 'bold #d0d0d0',
    'column.title.focused': 'bold #ffd75f underline',
    'card': '#f0f0f0',
    'card.focused': 'bold #ffffff bg:#444444',
    'card.meta': '#8a8a8a',
    'card.label': '#5fd7af',
    'table.header': 'bold #ffd75f',
    'table.row': '#f0f0f0',
    'table.row.focused': 'bold #ffffff bg:#303030',
    'table.cell.focused': 'reverse',
    'table.group': 'bold #87afff',
    'table.group.focused': 'bold reverse #87afff',
    'roadmap.timeline': 'bold #87afff',
    'roadmap.meta': '#8a8a8a',
    'roadmap.sprint': '#d7afff',
    'roadmap.progress': '#87ff5f',
    'roadmap.overview': 'bold #ffd75f',
    'status.todo': '#87d7ff',
    'status.in_progress': '#ffd75f',
    'status.done': '#87ff5f',
    'status.other': '#d0d0d0',
    'popup': 'bg:#262626 #f0f0f0',
    'popup.title': 'bold #ffd75f',
    'popup.option': '#d0d0d0',
    'popup.option.cursor': 'reverse bold #ffffaf',
    'popup.option.current': 'bold #87ff5f',
    'detail.title': 'bold #ffd75f',
    'detail.meta': '#87d7ff',
    'detail.body': '#f0f0f0',
    'settings.label': '#ffd787',
    'settings.value': '#f0f0f0',
    'settings.focused': 'bold reverse #ffd787',
    'input.prompt': 'bold #5fd7af',
    'input.text': '#ffffff',
    'input.cursor': 'reverse',
    'input.placeholder': 'italic #6c6c6c',
    'notify.info': '#87d7ff',
    'notify.warn': 'bold #ffd787',
    'notify.error': 'bold #ff8787',
    'footer': '#8a8a8a',
    'footer.key': 'bold #5fd7af',
}


def load_theme_presets(theme_dir: Path) -> List[ThemePreset]:
    presets: List[ThemePreset] = [ThemePreset(name="Default", style=dict(BASE_THEME_STYLE))]
    seen = {presets[0].name.lower()}
    if not theme_dir.is_dir():
        return presets
    candidates = sorted(theme_dir.glob("*.yml")) + sorted(theme_dir.glob("*.yaml"))
    for path in candidates:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError):
            log.warning("Failed to load theme file %s", path, exc_info=True)
            continue
        if not isinstance(data, dict):
            continue
        name = str(data.get("name") or path.stem).strip() or path.stem
        overrides = data.get("style") if isinstance(data.get("style"), dict) else {}
        style_dict = dict(BASE_THEME_STYLE)
        for key, value in overrides.items():
            if isinstance(key, str) and isinstance(value, str):
                style_dict[key] = value
        preset = ThemePreset(name=name, style=style_dict, description=data.get("description"))
        lowered = name.lower()
        if lowered == "default":
            presets[0] = preset
            continue
        if lowered in seen:
            continue
        presets.append(preset)
        seen.add(lowered)
    return presets


def select_theme(presets: List[ThemePreset], name: str) -> ThemePreset:
    wanted = (name or "").strip().lower()
    for preset in presets:
        if preset.name.lower() == wanted:
            return preset
    if wanted:
        log.warning("unknown theme %r, using %s", name, presets[0].name)
    return presets[0]
