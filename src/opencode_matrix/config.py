"""TOML configuration with environment overrides."""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigError
from .models.catalog import DEFAULT_ALIASES
from .models.store import DB_FILENAME, resolve_store_path

HOME_CONFIG_DIR = Path.home() / ".opencode-matrix"
HOME_CONFIG_PATH = HOME_CONFIG_DIR / "config.toml"
OPENCODE_CONFIG_FILENAME = "opencode.json"

DEFAULT_MODEL = "cc-oaicomp/Kimi-K2.5"
DEFAULT_COMMAND_PREFIX = "!opencode"
DEFAULT_DEVICE_NAME = "OpenCode Bot"
DEFAULT_USAGE_RETENTION_DAYS = 90


@dataclass(frozen=True, slots=True)
class MatrixSettings:
    homeserver: str
    user_id: str
    access_token: str | None = None
    password: str | None = None
    device_id: str | None = None
    device_name: str = DEFAULT_DEVICE_NAME
    allowed_users: tuple[str, ...] = ()
    allowed_rooms: tuple[str, ...] = ()
    notification_room: str | None = None
    command_prefix: str = DEFAULT_COMMAND_PREFIX


@dataclass(frozen=True, slots=True)
class ModelSettings:
    default_model: str = DEFAULT_MODEL
    config_path: Path | None = None
    server_url: str | None = None
    database_path: Path = HOME_CONFIG_DIR / DB_FILENAME
    usage_retention_days: int = DEFAULT_USAGE_RETENTION_DAYS
    aliases: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ALIASES))


@dataclass(frozen=True, slots=True)
class CompletionSettings:
    api_url: str | None = None
    api_key: str | None = None
    max_tokens: int = 1000
    temperature: float = 0.7
    timeout_seconds: float = 60.0
    system_prompt: str | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.api_url)


@dataclass(frozen=True, slots=True)
class BotConfig:
    matrix: MatrixSettings
    models: ModelSettings
    completion: CompletionSettings
    config_path: Path | None = None


def _expand_path(value: str) -> Path:
    return Path(os.path.expandvars(os.path.expanduser(value)))


def _normalize_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    return value or None


def _table(data: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"[{key}] must be a table")
    return value


def _str_list(value: Any, *, where: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, list) and all(isinstance(item, str) for item in value):
        items = value
    else:
        raise ConfigError(f"{where} must be a list of strings")
    return tuple(item.strip() for item in items if item.strip())


def _positive_number(value: Any, *, where: str, kind: type = int) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{where} must be a number")
    if value <= 0:
        raise ConfigError(f"{where} must be positive")
    return kind(value)


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"{path} is not valid TOML: {exc}") from exc


def _env(env: Mapping[str, str], name: str) -> str | None:
    return _normalize_text(env.get(name))


def _matrix_settings(
    section: dict[str, Any], env: Mapping[str, str]
) -> MatrixSettings:
    def pick(key: str, env_name: str) -> str | None:
        return _env(env, env_name) or _normalize_text(section.get(key))

    homeserver = pick("homeserver", "MATRIX_HOMESERVER")
    user_id = pick("user_id", "MATRIX_USER_ID")
    access_token = pick("access_token", "MATRIX_ACCESS_TOKEN")
    password = pick("password", "MATRIX_PASSWORD")
    if not homeserver:
        raise ConfigError("missing matrix.homeserver (or MATRIX_HOMESERVER)")
    if not user_id:
        raise ConfigError("missing matrix.user_id (or MATRIX_USER_ID)")
    if not access_token and not password:
        raise ConfigError(
            "matrix.access_token or matrix.password is required "
            "(or MATRIX_ACCESS_TOKEN / MATRIX_PASSWORD)"
        )

    allowed_users = _str_list(
        env.get("MATRIX_ALLOWED_USERS") or section.get("allowed_users"),
        where="matrix.allowed_users",
    )
    allowed_rooms = _str_list(
        env.get("MATRIX_ALLOWED_ROOMS") or section.get("allowed_rooms"),
        where="matrix.allowed_rooms",
    )
    prefix = _normalize_text(section.get("command_prefix")) or DEFAULT_COMMAND_PREFIX
    return MatrixSettings(
        homeserver=homeserver.rstrip("/"),
        user_id=user_id,
        access_token=access_token,
        password=password,
        device_id=pick("device_id", "MATRIX_DEVICE_ID"),
        device_name=pick("device_name", "MATRIX_DEVICE_NAME") or DEFAULT_DEVICE_NAME,
        allowed_users=allowed_users,
        allowed_rooms=allowed_rooms,
        notification_room=pick("notification_room", "MATRIX_NOTIFICATION_ROOM"),
        command_prefix=prefix,
    )


def _model_settings(
    section: dict[str, Any],
    env: Mapping[str, str],
    *,
    base_dir: Path,
    config_file: Path | None = None,
) -> ModelSettings:
    default_model = (
        _env(env, "AI_MODEL") or _normalize_text(section.get("default")) or DEFAULT_MODEL
    )
    config_path = _env(env, "OPENCODE_MODELS_CONFIG") or _normalize_text(
        section.get("config_path")
    )
    database_path = _normalize_text(section.get("database_path"))
    retention = section.get("usage_retention_days", DEFAULT_USAGE_RETENTION_DAYS)

    aliases = dict(DEFAULT_ALIASES)
    raw_aliases = section.get("aliases") or {}
    if not isinstance(raw_aliases, dict):
        raise ConfigError("[models.aliases] must be a table")
    for alias, target in raw_aliases.items():
        if not isinstance(target, str) or not target.strip():
            raise ConfigError(f"models.aliases.{alias} must be a non-empty string")
        aliases[alias.strip().lower()] = target.strip()

    def resolve(value: str) -> Path:
        path = _expand_path(value)
        return path if path.is_absolute() else base_dir / path

    if config_path:
        models_config: Path | None = resolve(config_path)
    else:
        candidate = base_dir / OPENCODE_CONFIG_FILENAME
        models_config = candidate if candidate.is_file() else None

    if database_path:
        db_path = resolve(database_path)
    elif config_file is not None:
        db_path = resolve_store_path(config_file)
    else:
        db_path = HOME_CONFIG_DIR / DB_FILENAME

    return ModelSettings(
        default_model=default_model,
        config_path=models_config,
        server_url=_env(env, "OPENCODE_SERVER_URL")
        or _normalize_text(section.get("server_url")),
        database_path=db_path,
        usage_retention_days=_positive_number(
            retention, where="models.usage_retention_days"
        ),
        aliases=aliases,
    )


def _completion_settings(
    section: dict[str, Any], env: Mapping[str, str]
) -> CompletionSettings:
    temperature = section.get("temperature", 0.7)
    if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
        raise ConfigError("completion.temperature must be a number")
    return CompletionSettings(
        api_url=_env(env, "AI_API_URL") or _normalize_text(section.get("api_url")),
        api_key=_env(env, "AI_API_KEY") or _normalize_text(section.get("api_key")),
        max_tokens=_positive_number(
            section.get("max_tokens", 1000), where="completion.max_tokens"
        ),
        temperature=float(temperature),
        timeout_seconds=_positive_number(
            section.get("timeout_seconds", 60),
            where="completion.timeout_seconds",
            kind=float,
        ),
        system_prompt=_normalize_text(section.get("system_prompt")),
    )


def load_config(
    path: Path | None = None, *, env: Mapping[str, str] | None = None
) -> BotConfig:
    """Load the bot configuration.

    An explicit ``path`` must exist. Without one the home config is used when
    present, otherwise the environment alone must provide the settings.

    Raises:
        ConfigError: on unreadable files, schema violations or missing
            credentials.
    """
    env = os.environ if env is None else env
    data: dict[str, Any] = {}
    config_path: Path | None = None
    if path is not None:
        config_path = _expand_path(str(path))
        if not config_path.is_file():
            raise ConfigError(f"config file not found: {config_path}")
        data = _read_toml(config_path)
    elif HOME_CONFIG_PATH.is_file():
        config_path = HOME_CONFIG_PATH
        data = _read_toml(config_path)

    base_dir = config_path.parent if config_path is not None else Path.cwd()
    return BotConfig(
        matrix=_matrix_settings(_table(data, "matrix"), env),
        models=_model_settings(
            _table(data, "models"),
            env,
            base_dir=base_dir,
            config_file=config_path,
        ),
        completion=_completion_settings(_table(data, "completion"), env),
        config_path=config_path,
    )
