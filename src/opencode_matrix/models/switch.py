"""Apply model switches to the session, user and room tiers."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Literal

from ..errors import (
    InvalidModelFormatError,
    InvalidScopeError,
    ModelUnavailableError,
    StorageUnavailableError,
)
from ..log import get_logger
from .catalog import ModelCatalog, is_valid_model_id
from .intent import SwitchIntent
from .resolver import PreferenceResolver, SessionModel
from .store import DEFAULT_SET_BY, PreferenceStore

logger = get_logger(__name__)

Tier = Literal["session", "user", "room"]

KNOWN_SCOPES = frozenset({"session", "user", "room", "global", "all"})
SESSION_SCOPES = frozenset({"session", "global", "all"})
DEFAULT_SCOPE = "session"
_SCOPE_SPLIT_RE = re.compile(r"[+,\s]+")


def parse_scope(scope: str | Iterable[str] | None) -> frozenset[str]:
    """Parse ``"user+session"``, ``"user, room"`` or an iterable of tokens."""
    if scope is None:
        return frozenset({DEFAULT_SCOPE})
    tokens = _SCOPE_SPLIT_RE.split(scope) if isinstance(scope, str) else list(scope)
    parsed: set[str] = set()
    for token in tokens:
        value = token.strip().lower()
        if not value:
            continue
        if value not in KNOWN_SCOPES:
            raise InvalidScopeError(token)
        parsed.add(value)
    return frozenset(parsed) or frozenset({DEFAULT_SCOPE})


def format_scope(scopes: Iterable[str]) -> str:
    order = ("session", "global", "all", "user", "room")
    values = set(scopes)
    return "+".join(name for name in order if name in values)


@dataclass(frozen=True, slots=True)
class TelemetryOutcome:
    history_recorded: bool
    usage_recorded: bool

    @property
    def ok(self) -> bool:
        return self.history_recorded and self.usage_recorded


@dataclass(frozen=True, slots=True)
class SwitchResult:
    """Outcome of a switch.

    ``previous``/``current`` describe the session tier; ``applied`` lists the
    tiers actually written. Telemetry is reported separately and never turns
    a successful switch into a failure.
    """

    previous: str | None
    current: str
    scopes: frozenset[str]
    applied: tuple[Tier, ...]
    telemetry: TelemetryOutcome
    storage_error: str | None = None
    intent: SwitchIntent | None = field(default=None)

    @property
    def scope_label(self) -> str:
        return format_scope(self.scopes)


class SwitchCoordinator:
    def __init__(
        self,
        catalog: ModelCatalog,
        store: PreferenceStore,
        session: SessionModel,
        resolver: PreferenceResolver,
    ) -> None:
        self._catalog = catalog
        self._store = store
        self._session = session
        self._resolver = resolver

    async def switch_model(
        self,
        model_id: str,
        *,
        scope: str | Iterable[str] | None = DEFAULT_SCOPE,
        user_id: str | None = None,
        room_id: str | None = None,
        intent: SwitchIntent | None = None,
    ) -> SwitchResult:
        if not is_valid_model_id(model_id):
            raise InvalidModelFormatError(model_id)
        if not self._catalog.validate(model_id):
            raise ModelUnavailableError(model_id)
        scopes = parse_scope(scope)

        before = await self._resolver.effective_model(user_id, room_id)
        previous: str | None = None
        applied: list[Tier] = []
        storage_error: str | None = None

        if scopes & SESSION_SCOPES:
            previous = self._session.current
            self._session.current = model_id
            applied.append("session")

        if "user" in scopes and user_id:
            try:
                await self._store.upsert_user_preference(user_id, model_id)
                applied.append("user")
            except StorageUnavailableError as exc:
                storage_error = str(exc)

        if "room" in scopes and room_id:
            try:
                await self._store.upsert_room_preference(
                    room_id, model_id, user_id or DEFAULT_SET_BY
                )
                applied.append("room")
            except StorageUnavailableError as exc:
                storage_error = str(exc)

        if storage_error is not None:
            logger.warning(
                "matrix.models.switch.persist_rejected",
                model_id=model_id,
                user_id=user_id,
                room_id=room_id,
                error=storage_error,
            )
            if "session" not in applied:
                previous = self._session.current
                self._session.current = model_id
                applied.append("session")

        scope_label = format_scope(scopes)
        history_ok = await self._store.record_switch(
            user_id, room_id, before, model_id, scope_label
        )
        usage_ok = await self._store.record_usage(
            model_id, user_id=user_id, room_id=room_id
        )

        logger.info(
            "matrix.models.switch.applied",
            previous=previous,
            current=model_id,
            scope=scope_label,
            applied=applied,
            user_id=user_id,
            room_id=room_id,
        )
        return SwitchResult(
            previous=previous,
            current=model_id,
            scopes=scopes,
            applied=tuple(applied),
            telemetry=TelemetryOutcome(
                history_recorded=history_ok, usage_recorded=usage_ok
            ),
            storage_error=storage_error,
            intent=intent,
        )
