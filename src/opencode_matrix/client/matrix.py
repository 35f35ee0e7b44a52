"""matrix-nio client wrapper used by the bridge."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import nio

from ..config import MatrixSettings
from ..log import get_logger
from ..types import MatrixIncomingMessage
from .content_builders import build_text_content

logger = get_logger(__name__)

MessageHandler = Callable[[MatrixIncomingMessage], Awaitable[None]]

SYNC_TIMEOUT_MS = 30000
TYPING_TIMEOUT_MS = 30000


def _is_error(response: Any) -> bool:
    return isinstance(response, nio.responses.ErrorResponse)


def _relates_to(source: dict[str, Any]) -> dict[str, Any]:
    content = source.get("content") if isinstance(source, dict) else None
    relates = content.get("m.relates_to") if isinstance(content, dict) else None
    return relates if isinstance(relates, dict) else {}


def message_from_event(
    room: nio.MatrixRoom, event: nio.RoomMessageText
) -> MatrixIncomingMessage:
    relates = _relates_to(event.source)
    in_reply_to = relates.get("m.in_reply_to") or {}
    thread_root = relates.get("event_id") if relates.get("rel_type") == "m.thread" else None
    return MatrixIncomingMessage(
        room_id=room.room_id,
        event_id=event.event_id,
        sender=event.sender,
        text=event.body or "",
        reply_to_event_id=in_reply_to.get("event_id"),
        thread_root_event_id=thread_root,
        formatted_body=event.formatted_body,
    )


class MatrixClient:
    """Login, sync and send on top of :class:`nio.AsyncClient`."""

    def __init__(
        self,
        settings: MatrixSettings,
        *,
        client: nio.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or nio.AsyncClient(
            settings.homeserver,
            settings.user_id,
            device_id=settings.device_id or "",
        )
        self._handler: MessageHandler | None = None

    @property
    def user_id(self) -> str:
        return self._settings.user_id

    @property
    def nio(self) -> nio.AsyncClient:
        return self._client

    async def login(self) -> bool:
        settings = self._settings
        if settings.access_token:
            if settings.device_id:
                self._client.restore_login(
                    settings.user_id, settings.device_id, settings.access_token
                )
            else:
                self._client.access_token = settings.access_token
                self._client.user_id = settings.user_id
            response = await self._client.whoami()
            if _is_error(response):
                logger.error("matrix.login.token_rejected", error=str(response))
                return False
            logger.info("matrix.login.token", user_id=settings.user_id)
            return True

        response = await self._client.login(
            password=settings.password or "", device_name=settings.device_name
        )
        if _is_error(response):
            logger.error("matrix.login.password_failed", error=str(response))
            return False
        logger.info(
            "matrix.login.password",
            user_id=settings.user_id,
            device_id=getattr(response, "device_id", None),
        )
        return True

    async def sync(self, timeout_ms: int = SYNC_TIMEOUT_MS) -> Any:
        response = await self._client.sync(timeout=timeout_ms, full_state=True)
        if _is_error(response):
            logger.warning("matrix.sync.failed", error=str(response))
        return response

    async def sync_forever(self, timeout_ms: int = SYNC_TIMEOUT_MS) -> None:
        await self._client.sync_forever(timeout=timeout_ms, full_state=True)

    def on_text_message(self, handler: MessageHandler) -> None:
        """Register the handler for ``m.text`` events from other users."""
        self._handler = handler

        async def callback(room: nio.MatrixRoom, event: nio.RoomMessageText) -> None:
            if event.sender == self._settings.user_id:
                return
            if self._handler is None:
                return
            await self._handler(message_from_event(room, event))

        self._client.add_event_callback(callback, nio.RoomMessageText)

    async def send_text(
        self,
        room_id: str,
        text: str,
        *,
        reply_to_event_id: str | None = None,
        formatted_body: str | None = None,
    ) -> str | None:
        content = build_text_content(
            text,
            formatted_body=formatted_body,
            reply_to_event_id=reply_to_event_id,
        )
        response = await self._client.room_send(
            room_id,
            message_type="m.room.message",
            content=content,
            ignore_unverified_devices=True,
        )
        if _is_error(response):
            logger.warning("matrix.send.failed", room_id=room_id, error=str(response))
            return None
        return getattr(response, "event_id", None)

    async def send_typing(self, room_id: str, typing: bool) -> None:
        response = await self._client.room_typing(
            room_id, typing_state=typing, timeout=TYPING_TIMEOUT_MS
        )
        if _is_error(response):
            logger.debug("matrix.typing.failed", room_id=room_id, error=str(response))

    async def close(self) -> None:
        await self._client.close()
