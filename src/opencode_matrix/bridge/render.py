"""Reply text for commands and natural-language switches."""

from __future__ import annotations

import random
from collections.abc import Callable, Sequence

from ..models.catalog import ModelDescriptor
from ..models.context import ContextStatus
from ..models.resolver import ModelResolution
from ..models.store import ModelUsageSummary
from ..models.switch import SwitchResult

MODELS_LIST_LIMIT = 20
TRUNCATED_SUFFIX = "\n... (reply truncated)"

RESOLUTION_SOURCE_LABELS = {
    "user": "user preference",
    "room": "room preference",
    "session": "session default",
}

FALLBACK_REPLIES = (
    'got your message: "{text}". the model backend is not reachable right now.',
    'hi! you said: "{text}". i could not reach the model backend, try again soon.',
    "message received, but the model backend ran into a problem.",
    'i am listening. your message was: "{text}". replies will be back shortly.',
)


def help_text(prefix: str) -> str:
    return "\n".join(
        [
            "opencode matrix bot commands:",
            "",
            f"`{prefix} help` - show this help",
            f"`{prefix} status` - bot and model status",
            f"`{prefix} models [filter]` - list available models",
            f"`{prefix} switch <model|alias> [scope]` - switch model (alias: `model`)",
            f"`{prefix} current` - show the model used for you here",
            f"`{prefix} reset [user|room]` - clear a saved preference",
            f"`{prefix} stats` - model usage statistics",
            f"`{prefix} reload` - reload the model catalog",
            f"`{prefix} version` - show version",
            "",
            "`!help` and `!status` are shortcuts.",
            "",
            "scopes: `session` (until restart), `user` (saved for you), "
            "`room` (saved for this room), `global`/`all` (same as session).",
            "combine scopes with `+`, e.g. `user+session`.",
            "",
            'you can also ask in plain words, e.g. "switch to deepseek" or "切换到 kimi 永久保存".',
        ]
    )


def usage_switch(prefix: str) -> str:
    return (
        f"usage: `{prefix} switch <model|alias> [scope]`\n"
        f"example: `{prefix} switch cc-oaicomp/DeepSeek-V3.2 user`\n"
        f"see `{prefix} models` for available models."
    )


def unknown_command(prefix: str, command: str) -> str:
    return f"unknown command `{command}`.\nuse `{prefix} help` to list commands."


def switch_error(prefix: str, error: Exception) -> str:
    return f"switch failed: {error}\nsee `{prefix} models` for available models."


def _label(model_id: str | None) -> str:
    return f"`{model_id}`" if model_id else "default"


def switch_summary(
    result: SwitchResult,
    *,
    before: str | None,
    user_id: str | None,
    room_id: str | None,
    source_text: str | None = None,
) -> str:
    lines = [
        "model switched.",
        f"from: {_label(before)}",
        f"to: `{result.current}`",
        f"scope: {result.scope_label}",
    ]
    if user_id:
        lines.append(f"user: {user_id}")
    if room_id:
        lines.append(f"room: {room_id}")
    if result.storage_error is not None:
        lines.append(
            "note: preference could not be saved, applied to this session only."
        )
    if result.intent is not None and source_text is not None:
        lines.append("")
        lines.append(
            f'(detected from "{source_text}", confidence: {result.intent.confidence})'
        )
    return "\n".join(lines)


def models_list(
    models: Sequence[ModelDescriptor],
    *,
    current: str,
    source: str,
    aliases_for: Callable[[str], list[str]],
    filter: str = "",
    limit: int = MODELS_LIST_LIMIT,
) -> str:
    if not models:
        if filter:
            return f"no models match `{filter}`."
        return "no models available."
    header = f"available models ({len(models)}, source: {source}):"
    lines = [header]
    for model in models[:limit]:
        marker = " (current)" if model.id == current else ""
        aliases = aliases_for(model.id)
        alias_text = f" [{', '.join(aliases)}]" if aliases else ""
        lines.append(f"- `{model.id}`: {model.display_name}{alias_text}{marker}")
    if len(models) > limit:
        lines.append(f"... and {len(models) - limit} more")
    return "\n".join(lines)


def _modalities(values: frozenset[str]) -> str:
    return ", ".join(sorted(values)) or "text"


def current_model(
    resolution: ModelResolution, descriptor: ModelDescriptor | None, prefix: str
) -> str:
    lines = [
        f"model: `{resolution.model_id}` "
        f"({RESOLUTION_SOURCE_LABELS[resolution.source]})",
    ]
    if descriptor is not None:
        lines.extend(
            [
                f"name: {descriptor.display_name}",
                f"provider: {descriptor.provider}",
                f"context window: {descriptor.context_window:,} tokens",
                f"max output: {descriptor.max_output_tokens:,} tokens",
                f"input: {_modalities(descriptor.input_modalities)}",
                f"output: {_modalities(descriptor.output_modalities)}",
            ]
        )
    else:
        lines.append("note: model is no longer in the catalog")
    lines.append(
        "preferences: "
        f"user: {resolution.user_model or 'none'}, "
        f"room: {resolution.room_model or 'none'}, "
        f"session: {resolution.session_model or 'none'}"
    )
    if resolution.storage_error is not None:
        lines.append("note: preference storage unavailable, showing session default")
    lines.append(f"use `{prefix} switch <model>` to change it.")
    return "\n".join(lines)


def _format_uptime(seconds: float) -> str:
    total = int(seconds)
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def status_text(
    status: ContextStatus,
    *,
    bot_user_id: str,
    uptime_s: float,
    completion_enabled: bool,
) -> str:
    lines = [
        "opencode bot status:",
        f"user: {bot_user_id}",
        f"uptime: {_format_uptime(uptime_s)}",
        f"session model: `{status.session_model}`",
        f"catalog: {status.catalog_size} models (source: {status.catalog_source})",
        f"completion backend: {'configured' if completion_enabled else 'not configured'}",
    ]
    store = status.store
    if store is None:
        lines.append("preference store: unavailable")
    else:
        lines.extend(
            [
                f"preference store: {store.database_size} bytes",
                f"  user preferences: {store.user_preferences}",
                f"  room preferences: {store.room_preferences}",
                f"  usage records: {store.usage_records}",
                f"  switch history: {store.switch_history}",
            ]
        )
    return "\n".join(lines)


def _usage_line(summary: ModelUsageSummary) -> str:
    return (
        f"- `{summary.model_id}`: {summary.usage_count} uses, "
        f"{summary.total_tokens} tokens, "
        f"avg {summary.avg_response_time_ms:.0f} ms"
    )


def stats_text(
    top: Sequence[ModelUsageSummary], mine: Sequence[ModelUsageSummary]
) -> str:
    lines = ["top models:"]
    lines.extend(_usage_line(item) for item in top)
    if not top:
        lines.append("- none")
    lines.extend(["", "your usage:"])
    lines.extend(_usage_line(item) for item in mine)
    if not mine:
        lines.append("- none")
    return "\n".join(lines)


def truncate_reply(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATED_SUFFIX


def fallback_reply(text: str, *, choice: Callable = random.choice) -> str:
    return choice(FALLBACK_REPLIES).format(text=text)
