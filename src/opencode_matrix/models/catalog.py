"""Catalog of language models the bot may switch to.

The catalog is loaded from the first source that yields usable descriptors:
the live provider list of the OpenCode server, then the provider/model
mapping in ``opencode.json``, then a builtin list. Loading never raises.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import httpx

from ..errors import ConfigError, ModelNotFoundError
from ..log import get_logger

logger = get_logger(__name__)

CatalogSource = Literal["live", "config", "builtin"]
LiveModelSource = Callable[[], Iterable["ModelDescriptor"]]

MODEL_ID_RE = re.compile(r"^[A-Za-z0-9._-]+/[A-Za-z0-9._-]+$")

DEFAULT_CONTEXT_WINDOW = 128000
DEFAULT_MAX_OUTPUT_TOKENS = 8000
DEFAULT_MODALITIES = frozenset({"text"})

DEFAULT_ALIASES: dict[str, str] = {
    "fast": "cc-oaicomp/DeepSeek-V3.2",
    "smart": "cc-openai/gpt-5.3-codex",
    "code": "cc-openai/gpt-5.3-codex",
    "chat": "cc-oaicomp/Kimi-K2.5",
    "default": "cc-oaicomp/Kimi-K2.5",
}


@dataclass(frozen=True, slots=True)
class ModelDescriptor:
    id: str
    display_name: str
    provider: str
    context_window: int = DEFAULT_CONTEXT_WINDOW
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    supports_reasoning: bool = False
    input_modalities: frozenset[str] = field(default=DEFAULT_MODALITIES)
    output_modalities: frozenset[str] = field(default=DEFAULT_MODALITIES)

    @property
    def name(self) -> str:
        return api_model_id(self.id)


BUILTIN_MODELS: tuple[ModelDescriptor, ...] = (
    ModelDescriptor(
        id="cc-oaicomp/Kimi-K2.5",
        display_name="Kimi K2.5",
        provider="cc-oaicomp",
        context_window=256000,
        max_output_tokens=32000,
        input_modalities=frozenset({"text", "image"}),
    ),
    ModelDescriptor(
        id="cc-oaicomp/DeepSeek-V3.2",
        display_name="DeepSeek V3.2",
        provider="cc-oaicomp",
        context_window=128000,
        max_output_tokens=8000,
    ),
    ModelDescriptor(
        id="cc-openai/gpt-5.3-codex",
        display_name="GPT 5.3 Codex",
        provider="cc-openai",
        context_window=272000,
        max_output_tokens=128000,
        input_modalities=frozenset({"text", "image"}),
    ),
    ModelDescriptor(
        id="cc-claude/claude-3.5-sonnet",
        display_name="Claude 3.5 Sonnet",
        provider="cc-claude",
        context_window=200000,
        max_output_tokens=128000,
        input_modalities=frozenset({"text", "image"}),
    ),
    ModelDescriptor(
        id="cc-gemini/gemini-3-flash-preview",
        display_name="Gemini 3 Flash Preview",
        provider="cc-gemini",
        context_window=1048576,
        max_output_tokens=65536,
        input_modalities=frozenset({"text", "image", "pdf"}),
    ),
)


def is_valid_model_id(model_id: str) -> bool:
    return isinstance(model_id, str) and MODEL_ID_RE.fullmatch(model_id) is not None


def api_model_id(full_model_id: str) -> str:
    """Strip the provider prefix: ``cc-oaicomp/Kimi-K2.5`` -> ``Kimi-K2.5``."""
    if "/" not in full_model_id:
        return full_model_id
    _, _, name = full_model_id.partition("/")
    return name or full_model_id


def _positive_int(value: Any, *, where: str, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{where} must be a positive integer")
    return value


def _modalities(value: Any, *, where: str) -> frozenset[str]:
    if value is None:
        return DEFAULT_MODALITIES
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{where} must be a list of strings")
    return frozenset(v.strip().lower() for v in value if v.strip()) or DEFAULT_MODALITIES


def _parse_model_entry(
    provider: str, model_key: str, entry: Any
) -> ModelDescriptor:
    where = f"provider.{provider}.models.{model_key}"
    if entry is None:
        entry = {}
    if not isinstance(entry, Mapping):
        raise ConfigError(f"{where} must be a table")
    name = entry.get("name")
    if name is not None and not isinstance(name, str):
        raise ConfigError(f"{where}.name must be a string")
    limit = entry.get("limit") or {}
    if not isinstance(limit, Mapping):
        raise ConfigError(f"{where}.limit must be a table")
    modalities = entry.get("modalities") or {}
    if not isinstance(modalities, Mapping):
        raise ConfigError(f"{where}.modalities must be a table")
    reasoning = entry.get("reasoning", False)
    if not isinstance(reasoning, bool):
        raise ConfigError(f"{where}.reasoning must be a boolean")
    return ModelDescriptor(
        id=f"{provider}/{model_key}",
        display_name=(name or "").strip() or model_key,
        provider=provider,
        context_window=_positive_int(
            limit.get("context"),
            where=f"{where}.limit.context",
            default=DEFAULT_CONTEXT_WINDOW,
        ),
        max_output_tokens=_positive_int(
            limit.get("output"),
            where=f"{where}.limit.output",
            default=DEFAULT_MAX_OUTPUT_TOKENS,
        ),
        supports_reasoning=reasoning,
        input_modalities=_modalities(
            modalities.get("input"), where=f"{where}.modalities.input"
        ),
        output_modalities=_modalities(
            modalities.get("output"), where=f"{where}.modalities.output"
        ),
    )


def parse_provider_models(providers: Any) -> list[ModelDescriptor]:
    """Parse a ``{provider: {"models": {model: {...}}}}`` mapping.

    Raises:
        ConfigError: if the mapping does not follow the schema.
    """
    if not isinstance(providers, Mapping):
        raise ConfigError("provider must be a table")
    models: list[ModelDescriptor] = []
    for provider, provider_cfg in providers.items():
        if not isinstance(provider, str) or not provider.strip():
            raise ConfigError("provider names must be non-empty strings")
        if not isinstance(provider_cfg, Mapping):
            raise ConfigError(f"provider.{provider} must be a table")
        provider_models = provider_cfg.get("models")
        if provider_models is None:
            continue
        if not isinstance(provider_models, Mapping):
            raise ConfigError(f"provider.{provider}.models must be a table")
        for model_key, entry in provider_models.items():
            if not isinstance(model_key, str):
                raise ConfigError(f"provider.{provider}.models keys must be strings")
            descriptor = _parse_model_entry(provider, model_key, entry)
            if not is_valid_model_id(descriptor.id):
                logger.warning(
                    "matrix.models.catalog.invalid_model_id", model_id=descriptor.id
                )
                continue
            models.append(descriptor)
    return models


def load_config_file_models(path: Path) -> list[ModelDescriptor]:
    raw = path.read_text(encoding="utf-8")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    return parse_provider_models(data.get("provider") or {})


def opencode_server_source(
    server_url: str, *, timeout: float = 10.0
) -> LiveModelSource:
    """Build a live source reading ``GET /config/providers`` from OpenCode."""

    def fetch() -> list[ModelDescriptor]:
        response = httpx.get(
            f"{server_url.rstrip('/')}/config/providers", timeout=timeout
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ConfigError("/config/providers returned non-object JSON")
        providers = data.get("providers") or []
        if not isinstance(providers, list):
            raise ConfigError("/config/providers: providers must be a list")
        mapping: dict[str, Any] = {}
        for item in providers:
            if not isinstance(item, dict) or not isinstance(item.get("id"), str):
                raise ConfigError("/config/providers: malformed provider entry")
            mapping[item["id"]] = {"models": item.get("models") or {}}
        return parse_provider_models(mapping)

    return fetch


class ModelCatalog:
    """Immutable-per-load set of model descriptors plus the alias table."""

    def __init__(
        self,
        *,
        live_source: LiveModelSource | None = None,
        config_path: Path | None = None,
        aliases: Mapping[str, str] | None = None,
        fallback: Iterable[ModelDescriptor] = BUILTIN_MODELS,
    ) -> None:
        self._live_source = live_source
        self._config_path = config_path
        self._fallback = tuple(fallback)
        merged = dict(DEFAULT_ALIASES)
        if aliases:
            merged.update(
                {key.strip().lower(): value.strip() for key, value in aliases.items()}
            )
        self._aliases = merged
        self._models: tuple[ModelDescriptor, ...] = ()
        self._source: CatalogSource = "builtin"

    @property
    def models(self) -> tuple[ModelDescriptor, ...]:
        return self._models

    @property
    def source(self) -> CatalogSource:
        return self._source

    @property
    def aliases(self) -> dict[str, str]:
        return dict(self._aliases)

    def load(self) -> list[ModelDescriptor]:
        """Load descriptors from the first working source. Never raises."""
        if self._live_source is not None:
            models = self._try_source("live", lambda: list(self._live_source()))
            if models:
                return self._install(models, "live")
        if self._config_path is not None:
            config_path = self._config_path
            models = self._try_source(
                "config", lambda: load_config_file_models(config_path)
            )
            if models:
                return self._install(models, "config")
        return self._install(list(self._fallback), "builtin")

    def reload(self) -> list[ModelDescriptor]:
        return self.load()

    def _try_source(
        self, name: str, loader: Callable[[], list[ModelDescriptor]]
    ) -> list[ModelDescriptor]:
        try:
            models = loader()
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "matrix.models.catalog.source_failed", source=name, error=str(exc)
            )
            return []
        if not models:
            logger.warning("matrix.models.catalog.source_empty", source=name)
        return models

    def _install(
        self, models: list[ModelDescriptor], source: CatalogSource
    ) -> list[ModelDescriptor]:
        unique: dict[str, ModelDescriptor] = {}
        for model in models:
            unique.setdefault(model.id, model)
        self._models = tuple(unique.values())
        self._source = source
        logger.info(
            "matrix.models.catalog.loaded", source=source, count=len(self._models)
        )
        return list(self._models)

    def validate(self, model_id: str) -> bool:
        return any(model.id == model_id for model in self._models)

    def get(self, model_id: str) -> ModelDescriptor:
        for model in self._models:
            if model.id == model_id:
                return model
        raise ModelNotFoundError(model_id)

    def resolve_alias(self, token: str) -> str:
        return self._aliases.get(token.strip().lower(), token)

    def aliases_for(self, model_id: str) -> list[str]:
        return [alias for alias, target in self._aliases.items() if target == model_id]

    def list(self, filter: str = "") -> list[ModelDescriptor]:
        needle = filter.strip().lower()
        if not needle:
            return list(self._models)
        return [
            model
            for model in self._models
            if needle in model.id.lower()
            or needle in model.display_name.lower()
            or needle in model.provider.lower()
        ]

    def __len__(self) -> int:
        return len(self._models)

    def __iter__(self):
        return iter(self._models)
