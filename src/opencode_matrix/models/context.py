"""Per-process wiring of the model catalog, store, resolver and detector."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import anyio.to_thread

from ..errors import ModelSwitchError
from ..log import get_logger
from .catalog import ModelCatalog, ModelDescriptor, opencode_server_source
from .intent import IntentDetector, KeywordTables
from .resolver import ModelResolution, PreferenceResolver, SessionModel
from .store import PreferenceStore, StoreStatus
from .switch import SwitchCoordinator, SwitchResult

if TYPE_CHECKING:
    from ..config import ModelSettings

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ContextStatus:
    session_model: str
    catalog_source: str
    catalog_size: int
    store: StoreStatus | None


class ModelContext:
    """Everything the message handlers need to pick and switch models.

    Built once per process and passed explicitly; the catalog only changes on
    :meth:`reload`.
    """

    def __init__(
        self,
        catalog: ModelCatalog,
        store: PreferenceStore,
        *,
        default_model: str | None = None,
        tables: KeywordTables | None = None,
    ) -> None:
        self.catalog = catalog
        self.store = store
        if not catalog.models:
            catalog.load()
        self.session = SessionModel(current=self._pick_default(default_model))
        self.resolver = PreferenceResolver(store, self.session)
        self.coordinator = SwitchCoordinator(catalog, store, self.session, self.resolver)
        self.detector = IntentDetector(aliases=catalog.aliases, tables=tables)

    @classmethod
    async def create(cls, settings: ModelSettings) -> ModelContext:
        live = (
            opencode_server_source(settings.server_url)
            if settings.server_url
            else None
        )
        catalog = ModelCatalog(
            live_source=live,
            config_path=settings.config_path,
            aliases=settings.aliases,
        )
        await anyio.to_thread.run_sync(catalog.load)
        store = PreferenceStore(settings.database_path)
        await store.initialize()
        return cls(catalog, store, default_model=settings.default_model)

    def _pick_default(self, requested: str | None) -> str:
        if requested and self.catalog.validate(requested):
            return requested
        fallback = self.catalog.models[0].id
        if requested:
            logger.warning(
                "matrix.models.default_unavailable",
                requested=requested,
                fallback=fallback,
            )
        return fallback

    @property
    def session_model(self) -> str:
        return self.session.current

    async def reload(self) -> int:
        models = await anyio.to_thread.run_sync(self.catalog.reload)
        self.detector = IntentDetector(
            aliases=self.catalog.aliases, tables=self.detector.tables
        )
        if not self.catalog.validate(self.session.current):
            self.session.current = self._pick_default(None)
        return len(models)

    def get_catalog(self, filter: str = "") -> list[ModelDescriptor]:
        return self.catalog.list(filter)

    def get_model(self, model_id: str) -> ModelDescriptor:
        return self.catalog.get(model_id)

    def resolve_alias(self, token: str) -> str:
        return self.catalog.resolve_alias(token)

    async def resolve(
        self, user_id: str | None = None, room_id: str | None = None
    ) -> ModelResolution:
        return await self.resolver.resolve(user_id, room_id)

    async def resolve_effective_model(
        self, user_id: str | None = None, room_id: str | None = None
    ) -> str:
        return await self.resolver.effective_model(user_id, room_id)

    async def switch_model(
        self,
        model_id: str,
        scope: str | Iterable[str] | None = "session",
        user_id: str | None = None,
        room_id: str | None = None,
    ) -> SwitchResult:
        return await self.coordinator.switch_model(
            model_id, scope=scope, user_id=user_id, room_id=room_id
        )

    async def try_switch_from_text(
        self, text: str, user_id: str | None, room_id: str | None
    ) -> SwitchResult | None:
        intent = self.detector.detect(text, self.catalog.models)
        if intent is None:
            return None
        logger.info(
            "matrix.models.intent_detected",
            model_id=intent.model_id,
            scope=intent.scope,
            confidence=intent.confidence,
            keywords=list(intent.matched_keywords),
        )
        try:
            return await self.coordinator.switch_model(
                intent.model_id,
                scope=intent.scope,
                user_id=user_id,
                room_id=room_id,
                intent=intent,
            )
        except ModelSwitchError as exc:
            logger.info("matrix.models.intent_switch_rejected", error=str(exc))
            return None

    async def record_completion(
        self,
        model_id: str,
        *,
        user_id: str | None,
        room_id: str | None,
        tokens_used: int,
        response_time_ms: int,
    ) -> bool:
        return await self.store.record_usage(
            model_id,
            user_id=user_id,
            room_id=room_id,
            tokens_used=tokens_used,
            response_time_ms=response_time_ms,
        )

    async def status(self) -> ContextStatus:
        try:
            store_status = await self.store.status()
        except Exception as exc:  # noqa: BLE001
            logger.warning("matrix.models.store_status_failed", error=str(exc))
            store_status = None
        return ContextStatus(
            session_model=self.session.current,
            catalog_source=self.catalog.source,
            catalog_size=len(self.catalog),
            store=store_status,
        )
