"""Tests for the per-process model context."""

from __future__ import annotations

import threading
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from opencode_matrix.config import ModelSettings
from opencode_matrix.errors import InvalidModelFormatError, ModelUnavailableError
from opencode_matrix.models.catalog import ModelCatalog, ModelDescriptor
from opencode_matrix.models.context import ModelContext
from opencode_matrix.models.store import PreferenceStore

KIMI = "cc-oaicomp/Kimi-K2.5"
DEEPSEEK = "cc-oaicomp/DeepSeek-V3.2"
USER = "@alice:example.org"
ROOM = "!room:example.org"


@pytest.mark.anyio
async def test_create_from_settings(tmp_path: Path) -> None:
    settings = ModelSettings(database_path=tmp_path / "db" / "prefs.db")

    context = await ModelContext.create(settings)

    assert context.session_model == KIMI
    assert context.catalog.source == "builtin"
    assert (tmp_path / "db" / "prefs.db").exists()


def test_unknown_default_falls_back_to_first_model(store: PreferenceStore) -> None:
    catalog = ModelCatalog()

    context = ModelContext(catalog, store, default_model="ghost/model-9")

    assert context.session_model == catalog.models[0].id


@pytest.mark.anyio
async def test_try_switch_from_text_persists_user_preference(
    model_context: ModelContext,
) -> None:
    result = await model_context.try_switch_from_text(
        "切换到 deepseek 永久保存", USER, ROOM
    )

    assert result is not None
    assert result.current == DEEPSEEK
    assert result.intent is not None
    assert result.intent.confidence == "low"
    assert await model_context.resolve_effective_model(USER, ROOM) == DEEPSEEK
    assert model_context.session_model == KIMI


@pytest.mark.anyio
async def test_try_switch_from_text_without_intent(model_context: ModelContext) -> None:
    assert await model_context.try_switch_from_text("今天天气怎么样", USER, ROOM) is None


@pytest.mark.anyio
async def test_try_switch_from_text_swallows_switch_errors(
    model_context: ModelContext,
) -> None:
    model_context.coordinator.switch_model = AsyncMock(  # type: ignore[method-assign]
        side_effect=ModelUnavailableError(DEEPSEEK)
    )

    assert await model_context.try_switch_from_text("use deepseek", USER, ROOM) is None


@pytest.mark.anyio
async def test_switch_model_propagates_errors(model_context: ModelContext) -> None:
    with pytest.raises(InvalidModelFormatError):
        await model_context.switch_model("nomodel")
    with pytest.raises(ModelUnavailableError):
        await model_context.switch_model("ghost/model-9")


@pytest.mark.anyio
async def test_record_completion_and_status(model_context: ModelContext) -> None:
    recorded = await model_context.record_completion(
        KIMI, user_id=USER, room_id=ROOM, tokens_used=42, response_time_ms=120
    )

    status = await model_context.status()

    assert recorded is True
    assert status.session_model == KIMI
    assert status.catalog_source == "builtin"
    assert status.catalog_size == 5
    assert status.store is not None
    assert status.store.usage_records == 1


def test_get_catalog_filters(model_context: ModelContext) -> None:
    assert [m.id for m in model_context.get_catalog("kimi")] == [KIMI]


@pytest.mark.anyio
async def test_reload_resets_session_when_model_disappears(
    store: PreferenceStore,
) -> None:
    models = [
        [ModelDescriptor(id="live/a", display_name="A", provider="live")],
        [ModelDescriptor(id="live/b", display_name="B", provider="live")],
    ]
    catalog = ModelCatalog(live_source=lambda: models.pop(0))
    context = ModelContext(catalog, store, default_model="live/a")
    assert context.session_model == "live/a"

    count = await context.reload()

    assert count == 1
    assert context.session_model == "live/b"


@pytest.mark.anyio
async def test_reload_rebuilds_detector_aliases(store: PreferenceStore) -> None:
    models = [
        [ModelDescriptor(id="live/a", display_name="A", provider="live")],
        [
            ModelDescriptor(id="live/a", display_name="A", provider="live"),
            ModelDescriptor(id="live/b", display_name="B", provider="live"),
        ],
    ]
    catalog = ModelCatalog(live_source=lambda: models.pop(0))
    context = ModelContext(catalog, store, default_model="live/a")
    detector = context.detector

    assert await context.reload() == 2

    assert context.detector is not detector
    assert context.session_model == "live/a"


@pytest.mark.anyio
async def test_create_loads_live_catalog_off_the_event_loop(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    loop_thread = threading.get_ident()
    fetch_threads: list[int] = []

    def fake_source(server_url: str):
        def fetch() -> list[ModelDescriptor]:
            fetch_threads.append(threading.get_ident())
            return [ModelDescriptor(id="live/a", display_name="A", provider="live")]

        return fetch

    monkeypatch.setattr(
        "opencode_matrix.models.context.opencode_server_source", fake_source
    )
    settings = ModelSettings(
        default_model="live/a",
        server_url="http://127.0.0.1:4096",
        database_path=tmp_path / "prefs.db",
    )

    context = await ModelContext.create(settings)

    assert context.catalog.source == "live"
    assert context.session_model == "live/a"
    assert fetch_threads and fetch_threads[0] != loop_thread
