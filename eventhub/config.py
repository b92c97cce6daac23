"""Global configuration for EventHub."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable

BACKENDS = {"sql", "supabase"}

DEFAULTS: dict[str, Any] = {
    "backend": "sql",
    "supabase_url": "",
    "supabase_key": "",
    "site_url": "http://localhost:8000",
    "session_cookie_secure": False,
    "access_token_ttl_minutes": 60,
    "recovery_token_ttl_minutes": 30,
    "seed_users": 5,
    "seed_events_per_user": 2,
    "seed_attendees_per_event": 3,
    "app_host": "0.0.0.0",
    "app_port": 8000,
}

TYPE_CASTERS: dict[str, Callable[[Any], Any]] = {
    "backend": str,
    "supabase_url": str,
    "supabase_key": str,
    "site_url": str,
    "session_cookie_secure": bool,
    "access_token_ttl_minutes": int,
    "recovery_token_ttl_minutes": int,
    "seed_users": int,
    "seed_events_per_user": int,
    "seed_attendees_per_event": int,
    "app_host": str,
    "app_port": int,
}

# Names the hosted dashboard hands out; accepted alongside the prefixed ones.
FALLBACK_ENV_KEYS: dict[str, str] = {
    "supabase_url": "SUPABASE_URL",
    "supabase_key": "SUPABASE_ANON_KEY",
}


class ConfigError(RuntimeError):
    """Raised when the configuration cannot start the application."""


@dataclass(frozen=True)
class Settings:
    base_dir: Path
    data_dir: Path
    database_url: str
    backend: str
    supabase_url: str
    supabase_key: str
    site_url: str
    session_cookie_secure: bool
    access_token_ttl_minutes: int
    recovery_token_ttl_minutes: int
    seed_users: int
    seed_events_per_user: int
    seed_attendees_per_event: int
    app_host: str
    app_port: int
    config_path: Path

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.access_token_ttl_minutes)

    @property
    def recovery_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.recovery_token_ttl_minutes)

    def validate(self) -> None:
        """Fail fast on settings the selected backend cannot run without."""
        if self.backend not in BACKENDS:
            raise ConfigError(
                f"Unknown backend {self.backend!r}; expected one of {sorted(BACKENDS)}"
            )
        if self.backend == "supabase":
            missing = [
                name
                for name in ("supabase_url", "supabase_key")
                if not getattr(self, name)
            ]
            if missing:
                raise ConfigError(
                    "Supabase backend selected but "
                    + ", ".join(missing)
                    + " is not set. Provide EVENTHUB_SUPABASE_URL and "
                    "EVENTHUB_SUPABASE_KEY (or SUPABASE_URL / SUPABASE_ANON_KEY)."
                )


def _boolify(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Cannot parse boolean value from {value!r}")


def _cast_value(key: str, value: Any) -> Any:
    if key not in TYPE_CASTERS:
        return value
    caster = TYPE_CASTERS[key]
    if caster is bool:
        return _boolify(value)
    return caster(value)


def _load_toml_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        return tomllib.load(handle)


def _config_layered_value(key: str, *, toml_config: dict[str, Any]) -> Any:
    env_key = f"EVENTHUB_{key.upper()}"
    if env_key in os.environ:
        return _cast_value(key, os.environ[env_key])
    fallback_key = FALLBACK_ENV_KEYS.get(key)
    if fallback_key and fallback_key in os.environ:
        return _cast_value(key, os.environ[fallback_key])
    if key in toml_config:
        return _cast_value(key, toml_config[key])
    return DEFAULTS[key]


def _resolve_paths(
    *,
    base_dir: Path,
    data_dir: str | Path | None,
    database_url: str | None,
) -> tuple[Path, Path, str]:
    resolved_base = Path(base_dir)
    resolved_data = Path(data_dir) if data_dir else resolved_base / "data"
    if not resolved_data.is_absolute():
        resolved_data = resolved_base / resolved_data
    resolved_url = database_url or f"sqlite:///{resolved_data / 'eventhub.db'}"
    return resolved_base, resolved_data, resolved_url


def load_settings(config_override: Path | None = None) -> Settings:
    base_dir = Path(os.getenv("EVENTHUB_BASE_DIR", Path.cwd()))
    env_config = os.getenv("EVENTHUB_CONFIG")
    config_path = Path(config_override or env_config or base_dir / "eventhub.toml")
    toml_config = _load_toml_config(config_path)

    base_dir_value, data_dir_value, database_url_value = _resolve_paths(
        base_dir=base_dir,
        data_dir=os.getenv("EVENTHUB_DATA_DIR", toml_config.get("data_dir")),
        database_url=os.getenv("EVENTHUB_DATABASE_URL", toml_config.get("database_url")),
    )

    values = {
        key: _config_layered_value(key, toml_config=toml_config) for key in DEFAULTS
    }
    values["backend"] = values["backend"].strip().lower()
    values["site_url"] = values["site_url"].rstrip("/")

    settings = Settings(
        base_dir=base_dir_value,
        data_dir=data_dir_value,
        database_url=database_url_value,
        config_path=config_path,
        **values,
    )
    if settings.backend == "sql" and settings.database_url.startswith("sqlite:///"):
        settings.data_dir.mkdir(parents=True, exist_ok=True)
    return settings


def settings_as_dict(settings: Settings) -> dict[str, Any]:
    data = {
        "base_dir": str(settings.base_dir),
        "data_dir": str(settings.data_dir),
        "database_url": settings.database_url,
    }
    for key in DEFAULTS:
        data[key] = getattr(settings, key)
    if data["supabase_key"]:
        data["supabase_key"] = data["supabase_key"][:6] + "..."
    return data


def _toml_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def write_config_file(config: dict[str, Any], *, path: Path) -> None:
    lines = ["# EventHub configuration\n"]
    for key in sorted(config.keys()):
        lines.append(f"{key} = {_toml_literal(config[key])}\n")
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
