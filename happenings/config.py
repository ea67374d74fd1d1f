"""Global configuration for happenings."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from .venues import CURATED_ALIAS_OVERRIDES

DEFAULTS: dict[str, Any] = {
    "default_window_days": 90,
    "max_events": 200,
    "max_total_occurrences": 500,
    "max_occurrences_per_event": 40,
    "seed_venues": 10,
    "seed_events": 25,
    "log_level": "WARNING",
}

TYPE_CASTERS: dict[str, Callable[[Any], Any]] = {
    "default_window_days": int,
    "max_events": int,
    "max_total_occurrences": int,
    "max_occurrences_per_event": int,
    "seed_venues": int,
    "seed_events": int,
    "log_level": str,
}

ALIASES_TABLE = "venue_aliases"


@dataclass(frozen=True)
class Settings:
    base_dir: Path
    default_window_days: int
    max_events: int
    max_total_occurrences: int
    max_occurrences_per_event: int
    seed_venues: int
    seed_events: int
    log_level: str
    config_path: Path
    venue_aliases: dict[str, tuple[str, ...]] = field(default_factory=dict)


def _cast_value(key: str, value: Any) -> Any:
    if key not in TYPE_CASTERS:
        return value
    return TYPE_CASTERS[key](value)


def _load_toml_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        return tomllib.load(handle)


def _config_layered_value(key: str, *, toml_config: dict[str, Any]) -> Any:
    env_key = f"HAPPENINGS_{key.upper()}"
    if env_key in os.environ:
        return _cast_value(key, os.environ[env_key])
    if key in toml_config:
        return _cast_value(key, toml_config[key])
    return DEFAULTS[key]


def _venue_aliases(toml_config: dict[str, Any]) -> dict[str, tuple[str, ...]]:
    """Merge the ``[venue_aliases]`` table over the curated aliases."""
    merged = dict(CURATED_ALIAS_OVERRIDES)
    table = toml_config.get(ALIASES_TABLE) or {}
    if not isinstance(table, dict):
        raise ValueError(f"[{ALIASES_TABLE}] must be a table of slug = [aliases]")
    for slug, aliases in table.items():
        if isinstance(aliases, str):
            aliases = [aliases]
        merged[slug] = tuple(str(alias) for alias in aliases)
    return merged


def load_settings(config_override: Path | None = None) -> Settings:
    base_dir = Path(os.getenv("HAPPENINGS_BASE_DIR", Path.cwd()))
    env_config = os.getenv("HAPPENINGS_CONFIG")
    config_path = Path(config_override or env_config or base_dir / "happenings.toml")
    toml_config = _load_toml_config(config_path)

    values = {key: _config_layered_value(key, toml_config=toml_config) for key in DEFAULTS}
    values["log_level"] = str(values["log_level"]).upper()
    return Settings(
        base_dir=base_dir,
        config_path=config_path,
        venue_aliases=_venue_aliases(toml_config),
        **values,
    )


def settings_as_dict(settings: Settings) -> dict[str, Any]:
    return {
        "base_dir": str(settings.base_dir),
        "config_path": str(settings.config_path),
        "default_window_days": settings.default_window_days,
        "max_events": settings.max_events,
        "max_total_occurrences": settings.max_total_occurrences,
        "max_occurrences_per_event": settings.max_occurrences_per_event,
        "seed_venues": settings.seed_venues,
        "seed_events": settings.seed_events,
        "log_level": settings.log_level,
        "venue_aliases": {
            slug: list(aliases) for slug, aliases in settings.venue_aliases.items()
        },
    }


def _toml_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_toml_literal(item) for item in value) + "]"
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def write_config_file(config: dict[str, Any], *, path: Path) -> None:
    lines = ["# happenings configuration\n"]
    aliases = config.get(ALIASES_TABLE) or {}
    for key in sorted(config.keys()):
        if key == ALIASES_TABLE:
            continue
        lines.append(f"{key} = {_toml_literal(config[key])}\n")
    if aliases:
        lines.append(f"\n[{ALIASES_TABLE}]\n")
        for slug in sorted(aliases):
            lines.append(f"{_toml_literal(slug)} = {_toml_literal(aliases[slug])}\n")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(lines), encoding="utf-8")


def update_config_file(updates: dict[str, Any], *, path: Path | None = None) -> Settings:
    current_settings = settings if "settings" in globals() else load_settings()
    target_path = path or current_settings.config_path
    existing = _load_toml_config(target_path)
    merged = {**existing}
    for key, value in updates.items():
        if key not in DEFAULTS:
            continue
        merged[key] = _cast_value(key, value)
    write_config_file(merged, path=target_path)
    new_settings = load_settings(target_path)
    globals()["settings"] = new_settings
    return new_settings


settings = load_settings()
