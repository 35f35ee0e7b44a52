"""Built-in bot commands."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ... import __version__
from ...errors import ModelNotFoundError, ModelSwitchError, StorageUnavailableError
from ...log import get_logger
from ...types import MatrixIncomingMessage
from .. import render
from .parse import split_command_args

if TYPE_CHECKING:
    from ..config import MatrixBridgeConfig

logger = get_logger(__name__)

BUILTIN_COMMAND_IDS = frozenset(
    {
        "help",
        "status",
        "models",
        "switch",
        "model",
        "current",
        "reset",
        "stats",
        "reload",
        "version",
    }
)

RESET_USAGE = "usage: `{prefix} reset [user|room]`"
STATS_TOP_LIMIT = 5
STORE_UNAVAILABLE = "preference store unavailable."


async def _reply(
    cfg: MatrixBridgeConfig,
    *,
    room_id: str,
    event_id: str,
    text: str,
) -> None:
    await cfg.client.send_text(room_id, text, reply_to_event_id=event_id)


async def _handle_models_command(
    cfg: MatrixBridgeConfig, msg: MatrixIncomingMessage, args_text: str
) -> None:
    needle = args_text.strip()
    models = cfg.models.get_catalog(needle)
    current = await cfg.models.resolve_effective_model(msg.sender, msg.room_id)
    text = render.models_list(
        models,
        current=current,
        source=cfg.models.catalog.source,
        aliases_for=cfg.models.catalog.aliases_for,
        filter=needle,
    )
    await _reply(cfg, room_id=msg.room_id, event_id=msg.event_id, text=text)


async def _handle_switch_command(
    cfg: MatrixBridgeConfig, msg: MatrixIncomingMessage, args_text: str
) -> None:
    tokens = split_command_args(args_text)
    if not tokens:
        await _reply(
            cfg,
            room_id=msg.room_id,
            event_id=msg.event_id,
            text=render.usage_switch(cfg.command_prefix),
        )
        return
    model_id = cfg.models.resolve_alias(tokens[0])
    scope = "+".join(tokens[1:]) or "session"
    before = await cfg.models.resolve_effective_model(msg.sender, msg.room_id)
    try:
        result = await cfg.models.switch_model(
            model_id, scope=scope, user_id=msg.sender, room_id=msg.room_id
        )
    except ModelSwitchError as exc:
        logger.info(
            "matrix.command.switch_rejected",
            sender=msg.sender,
            model_id=model_id,
            error=str(exc),
        )
        await _reply(
            cfg,
            room_id=msg.room_id,
            event_id=msg.event_id,
            text=render.switch_error(cfg.command_prefix, exc),
        )
        return
    await _reply(
        cfg,
        room_id=msg.room_id,
        event_id=msg.event_id,
        text=render.switch_summary(
            result, before=before, user_id=msg.sender, room_id=msg.room_id
        ),
    )


async def _handle_current_command(
    cfg: MatrixBridgeConfig, msg: MatrixIncomingMessage
) -> None:
    resolution = await cfg.models.resolve(msg.sender, msg.room_id)
    try:
        descriptor = cfg.models.get_model(resolution.model_id)
    except ModelNotFoundError:
        descriptor = None
    await _reply(
        cfg,
        room_id=msg.room_id,
        event_id=msg.event_id,
        text=render.current_model(resolution, descriptor, cfg.command_prefix),
    )


async def _handle_reset_command(
    cfg: MatrixBridgeConfig, msg: MatrixIncomingMessage, args_text: str
) -> None:
    tokens = split_command_args(args_text)
    target = tokens[0].lower() if tokens else "user"
    if len(tokens) > 1 or target not in {"user", "room"}:
        await _reply(
            cfg,
            room_id=msg.room_id,
            event_id=msg.event_id,
            text=RESET_USAGE.format(prefix=cfg.command_prefix),
        )
        return
    store = cfg.models.store
    try:
        if target == "user":
            cleared = await store.clear_user_preference(msg.sender)
        else:
            cleared = await store.clear_room_preference(msg.room_id)
    except StorageUnavailableError:
        await _reply(
            cfg, room_id=msg.room_id, event_id=msg.event_id, text=STORE_UNAVAILABLE
        )
        return
    text = (
        f"{target} model preference cleared."
        if cleared
        else f"no {target} model preference to clear."
    )
    await _reply(cfg, room_id=msg.room_id, event_id=msg.event_id, text=text)


async def _handle_stats_command(
    cfg: MatrixBridgeConfig, msg: MatrixIncomingMessage
) -> None:
    store = cfg.models.store
    try:
        top = await store.top_models(STATS_TOP_LIMIT)
        mine = await store.user_stats(msg.sender)
    except StorageUnavailableError:
        await _reply(
            cfg, room_id=msg.room_id, event_id=msg.event_id, text=STORE_UNAVAILABLE
        )
        return
    await _reply(
        cfg,
        room_id=msg.room_id,
        event_id=msg.event_id,
        text=render.stats_text(top, mine),
    )


async def _handle_status_command(
    cfg: MatrixBridgeConfig, msg: MatrixIncomingMessage
) -> None:
    status = await cfg.models.status()
    text = render.status_text(
        status,
        bot_user_id=cfg.client.user_id,
        uptime_s=cfg.uptime_s(),
        completion_enabled=cfg.completion is not None,
    )
    await _reply(cfg, room_id=msg.room_id, event_id=msg.event_id, text=text)


async def _handle_reload_command(
    cfg: MatrixBridgeConfig, msg: MatrixIncomingMessage
) -> None:
    count = await cfg.models.reload()
    logger.info("matrix.command.catalog_reloaded", sender=msg.sender, count=count)
    await _reply(
        cfg,
        room_id=msg.room_id,
        event_id=msg.event_id,
        text=f"catalog reloaded: {count} models (source: {cfg.models.catalog.source}).",
    )


async def handle_builtin_command(
    cfg: MatrixBridgeConfig,
    msg: MatrixIncomingMessage,
    *,
    command_id: str,
    args_text: str,
) -> bool:
    """Handle built-in commands. Returns False for unknown command ids."""
    if command_id in {"help", ""}:
        await _reply(
            cfg,
            room_id=msg.room_id,
            event_id=msg.event_id,
            text=render.help_text(cfg.command_prefix),
        )
        return True
    if command_id == "status":
        await _handle_status_command(cfg, msg)
        return True
    if command_id == "models":
        await _handle_models_command(cfg, msg, args_text)
        return True
    if command_id in {"switch", "model"}:
        await _handle_switch_command(cfg, msg, args_text)
        return True
    if command_id == "current":
        await _handle_current_command(cfg, msg)
        return True
    if command_id == "reset":
        await _handle_reset_command(cfg, msg, args_text)
        return True
    if command_id == "stats":
        await _handle_stats_command(cfg, msg)
        return True
    if command_id == "reload":
        await _handle_reload_command(cfg, msg)
        return True
    if command_id == "version":
        await _reply(
            cfg,
            room_id=msg.room_id,
            event_id=msg.event_id,
            text=f"opencode-matrix {__version__}",
        )
        return True
    return False
