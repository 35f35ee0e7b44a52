"""Per-message dispatch for the Matrix bridge."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from ..errors import CompletionError
from ..log import get_logger
from ..types import MatrixIncomingMessage
from . import render
from .commands import handle_builtin_command, parse_command

if TYPE_CHECKING:
    from .config import MatrixBridgeConfig

logger = get_logger(__name__)


def _is_allowed(value: str, allowed: Iterable[str]) -> bool:
    allowed = tuple(allowed)
    if not allowed:
        return True
    lowered = value.lower()
    return any(item.lower() == lowered for item in allowed)


def is_message_allowed(cfg: MatrixBridgeConfig, msg: MatrixIncomingMessage) -> bool:
    """Empty allowlists admit everyone; matching is case-insensitive."""
    return _is_allowed(msg.sender, cfg.allowed_users) and _is_allowed(
        msg.room_id, cfg.allowed_rooms
    )


async def _reply(cfg: MatrixBridgeConfig, msg: MatrixIncomingMessage, text: str) -> None:
    await cfg.client.send_text(msg.room_id, text, reply_to_event_id=msg.event_id)


async def _complete(cfg: MatrixBridgeConfig, msg: MatrixIncomingMessage) -> str:
    if cfg.completion is None:
        logger.debug("matrix.completion.disabled", room_id=msg.room_id)
        return render.fallback_reply(msg.text)
    model_id = await cfg.models.resolve_effective_model(msg.sender, msg.room_id)
    try:
        result = await cfg.completion.complete(msg.text, model_id=model_id)
    except CompletionError as exc:
        logger.warning(
            "matrix.completion.failed",
            model_id=model_id,
            room_id=msg.room_id,
            error=str(exc),
        )
        return render.fallback_reply(msg.text)
    await cfg.models.record_completion(
        model_id,
        user_id=msg.sender,
        room_id=msg.room_id,
        tokens_used=result.tokens_used,
        response_time_ms=result.response_time_ms,
    )
    return render.truncate_reply(result.text, cfg.max_reply_chars)


async def _set_typing(cfg: MatrixBridgeConfig, room_id: str, typing: bool) -> None:
    try:
        await cfg.client.send_typing(room_id, typing)
    except Exception as exc:  # noqa: BLE001
        logger.warning("matrix.typing.failed", room_id=room_id, error=str(exc))


async def _handle_natural_language(
    cfg: MatrixBridgeConfig, msg: MatrixIncomingMessage
) -> None:
    await _set_typing(cfg, msg.room_id, True)
    try:
        before = await cfg.models.resolve_effective_model(msg.sender, msg.room_id)
        result = await cfg.models.try_switch_from_text(
            msg.text, msg.sender, msg.room_id
        )
        if result is not None:
            await _reply(
                cfg,
                msg,
                render.switch_summary(
                    result,
                    before=before,
                    user_id=msg.sender,
                    room_id=msg.room_id,
                    source_text=msg.text,
                ),
            )
            return
        await _reply(cfg, msg, await _complete(cfg, msg))
    finally:
        await _set_typing(cfg, msg.room_id, False)


async def _dispatch(cfg: MatrixBridgeConfig, msg: MatrixIncomingMessage) -> None:
    parsed = parse_command(msg.text, cfg.command_prefix)
    if parsed is None:
        await _handle_natural_language(cfg, msg)
        return
    logger.info(
        "matrix.command.received",
        sender=msg.sender,
        room_id=msg.room_id,
        command=parsed.command_id,
    )
    handled = await handle_builtin_command(
        cfg, msg, command_id=parsed.command_id, args_text=parsed.args_text
    )
    if not handled:
        await _reply(
            cfg, msg, render.unknown_command(cfg.command_prefix, parsed.command_id)
        )


async def handle_message(cfg: MatrixBridgeConfig, msg: MatrixIncomingMessage) -> None:
    if msg.sender == cfg.client.user_id:
        return
    if not is_message_allowed(cfg, msg):
        logger.info(
            "matrix.message.ignored_not_allowed",
            sender=msg.sender,
            room_id=msg.room_id,
        )
        return
    if not msg.text.strip():
        return
    try:
        await _dispatch(cfg, msg)
    except Exception as exc:
        logger.exception(
            "matrix.message.failed",
            sender=msg.sender,
            room_id=msg.room_id,
            error=str(exc),
        )
        try:
            await _reply(cfg, msg, f"error handling message: {exc}")
        except Exception as send_exc:  # noqa: BLE001
            logger.warning(
                "matrix.message.error_reply_failed",
                room_id=msg.room_id,
                error=str(send_exc),
            )
