"""Bridge wiring shared by the event handlers and the runtime."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..config import BotConfig

if TYPE_CHECKING:
    from ..client.matrix import MatrixClient
    from ..completion import CompletionClient
    from ..models.context import ModelContext

DEFAULT_MAX_REPLY_CHARS = 2000
DEFAULT_STARTUP_MSG = "opencode bot is online."


@dataclass(slots=True)
class MatrixBridgeConfig:
    client: MatrixClient
    models: ModelContext
    config: BotConfig
    completion: CompletionClient | None = None
    max_reply_chars: int = DEFAULT_MAX_REPLY_CHARS
    startup_msg: str = DEFAULT_STARTUP_MSG
    started_at: float = field(default_factory=time.monotonic)

    @property
    def command_prefix(self) -> str:
        return self.config.matrix.command_prefix

    @property
    def allowed_users(self) -> tuple[str, ...]:
        return self.config.matrix.allowed_users

    @property
    def allowed_rooms(self) -> tuple[str, ...]:
        return self.config.matrix.allowed_rooms

    @property
    def notification_room(self) -> str | None:
        return self.config.matrix.notification_room

    @property
    def usage_retention_days(self) -> int:
        return self.config.models.usage_retention_days

    def uptime_s(self) -> float:
        return time.monotonic() - self.started_at
