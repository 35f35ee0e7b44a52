"""Effective model resolution across the user, room and session tiers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from ..errors import StorageUnavailableError
from ..log import get_logger
from .store import PreferenceStore

logger = get_logger(__name__)

ModelSource = Literal["user", "room", "session"]


@dataclass(slots=True)
class SessionModel:
    """Process-lifetime default model; never persisted."""

    current: str


@dataclass(frozen=True, slots=True)
class ModelResolution:
    model_id: str
    source: ModelSource
    user_model: str | None = None
    room_model: str | None = None
    session_model: str | None = None
    storage_error: str | None = None


class PreferenceResolver:
    """Resolve the model for a (user, room) pair.

    Precedence: user preference, then room preference, then the session
    default. The first tier with a value wins; tiers are never blended.
    """

    def __init__(self, store: PreferenceStore, session: SessionModel) -> None:
        self._store = store
        self._session = session

    async def resolve(
        self, user_id: str | None = None, room_id: str | None = None
    ) -> ModelResolution:
        session_model = self._session.current
        user_model: str | None = None
        room_model: str | None = None
        try:
            if user_id:
                user_pref = await self._store.get_user_preference(user_id)
                user_model = user_pref.model_id if user_pref is not None else None
            if room_id:
                room_pref = await self._store.get_room_preference(room_id)
                room_model = room_pref.model_id if room_pref is not None else None
        except StorageUnavailableError as exc:
            logger.warning(
                "matrix.models.resolver.storage_unavailable",
                user_id=user_id,
                room_id=room_id,
                error=str(exc),
            )
            return ModelResolution(
                model_id=session_model,
                source="session",
                session_model=session_model,
                storage_error=str(exc),
            )
        if user_model is not None:
            model_id, source = user_model, "user"
        elif room_model is not None:
            model_id, source = room_model, "room"
        else:
            model_id, source = session_model, "session"
        return ModelResolution(
            model_id=model_id,
            source=source,
            user_model=user_model,
            room_model=room_model,
            session_model=session_model,
        )

    async def effective_model(
        self, user_id: str | None = None, room_id: str | None = None
    ) -> str:
        resolution = await self.resolve(user_id, room_id)
        return resolution.model_id
