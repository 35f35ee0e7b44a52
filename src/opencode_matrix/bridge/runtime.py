"""Bridge startup, sync loop and maintenance."""

from __future__ import annotations

import anyio

from ..client.matrix import MatrixClient
from ..completion import CompletionClient
from ..config import BotConfig
from ..log import get_logger
from ..models.context import ModelContext
from ..types import MatrixIncomingMessage
from .config import MatrixBridgeConfig
from .events import handle_message

logger = get_logger(__name__)

MAINTENANCE_INTERVAL_S = 24 * 60 * 60


async def _send_startup(cfg: MatrixBridgeConfig) -> None:
    room_id = cfg.notification_room
    if not room_id:
        return
    text = f"{cfg.startup_msg}\nmodel: `{cfg.models.session_model}`"
    await cfg.client.send_text(room_id, text)
    logger.info("matrix.startup.notified", room_id=room_id)


async def _startup_sequence(cfg: MatrixBridgeConfig) -> bool:
    if not await cfg.client.login():
        logger.error("matrix.startup.login_failed")
        return False
    await cfg.client.sync()
    await _send_startup(cfg)
    return True


async def _prune_usage(cfg: MatrixBridgeConfig) -> int:
    try:
        return await cfg.models.store.prune_usage(cfg.usage_retention_days)
    except Exception as exc:  # noqa: BLE001
        logger.warning("matrix.maintenance.prune_failed", error=str(exc))
        return 0


async def _maintenance_loop(
    cfg: MatrixBridgeConfig, *, interval_s: float = MAINTENANCE_INTERVAL_S
) -> None:
    while True:
        await _prune_usage(cfg)
        await anyio.sleep(interval_s)


async def build_bridge(config: BotConfig) -> MatrixBridgeConfig:
    models = await ModelContext.create(config.models)
    completion = (
        CompletionClient(config.completion) if config.completion.enabled else None
    )
    return MatrixBridgeConfig(
        client=MatrixClient(config.matrix),
        models=models,
        config=config,
        completion=completion,
    )


async def run_bridge(cfg: MatrixBridgeConfig) -> None:
    if not await _startup_sequence(cfg):
        return
    async with anyio.create_task_group() as tg:

        async def on_message(msg: MatrixIncomingMessage) -> None:
            tg.start_soon(handle_message, cfg, msg)

        cfg.client.on_text_message(on_message)
        tg.start_soon(_maintenance_loop, cfg)
        logger.info(
            "matrix.bridge.running",
            user_id=cfg.client.user_id,
            model=cfg.models.session_model,
        )
        await cfg.client.sync_forever()
        tg.cancel_scope.cancel()


async def run(config: BotConfig) -> None:
    cfg = await build_bridge(config)
    try:
        await run_bridge(cfg)
    finally:
        if cfg.completion is not None:
            await cfg.completion.aclose()
        await cfg.client.close()
