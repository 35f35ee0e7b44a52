"""Tests for the SQLite preference store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import anyio
import pytest

from opencode_matrix.errors import StorageUnavailableError
from opencode_matrix.models.store import (
    DEFAULT_SET_BY,
    PreferenceStore,
    resolve_store_path,
    utc_now,
)


def test_resolve_store_path(tmp_path: Path) -> None:
    config = tmp_path / "config.toml"

    assert resolve_store_path(config) == tmp_path / "model-preferences.db"


@pytest.mark.anyio
async def test_initialize_is_idempotent(store: PreferenceStore) -> None:
    await store.initialize()
    await store.initialize()

    status = await store.status()
    assert status.user_preferences == 0
    assert status.room_preferences == 0


@pytest.mark.anyio
async def test_get_missing_preferences(store: PreferenceStore) -> None:
    assert await store.get_user_preference("@nobody:example.org") is None
    assert await store.get_room_preference("!nowhere:example.org") is None


@pytest.mark.anyio
async def test_upsert_user_preference_counts_usage(store: PreferenceStore) -> None:
    first = await store.upsert_user_preference("@a:x", "p/one")
    second = await store.upsert_user_preference("@a:x", "p/two")

    assert first.usage_count == 1
    assert second.usage_count == 2
    assert second.model_id == "p/two"
    assert second.created_at == first.created_at
    assert second.last_used_at >= first.last_used_at


@pytest.mark.anyio
async def test_upsert_user_preference_same_model_twice(store: PreferenceStore) -> None:
    await store.upsert_user_preference("@a:x", "p/one")
    await store.upsert_user_preference("@a:x", "p/one")

    pref = await store.get_user_preference("@a:x")
    assert pref is not None
    assert pref.model_id == "p/one"
    assert pref.usage_count == 2
    assert len(await store.list_user_preferences()) == 1


@pytest.mark.anyio
async def test_upsert_room_preference_defaults_set_by(store: PreferenceStore) -> None:
    pref = await store.upsert_room_preference("!r:x", "p/one")

    assert pref.set_by_user == DEFAULT_SET_BY
    assert pref.set_at.tzinfo is not None


@pytest.mark.anyio
async def test_upsert_room_preference_overwrites(store: PreferenceStore) -> None:
    await store.upsert_room_preference("!r:x", "p/one", "@a:x")
    await store.upsert_room_preference("!r:x", "p/two", "@b:x")

    pref = await store.get_room_preference("!r:x")
    assert pref is not None
    assert pref.model_id == "p/two"
    assert pref.set_by_user == "@b:x"
    assert len(await store.list_room_preferences()) == 1


@pytest.mark.anyio
async def test_concurrent_upserts_keep_one_row(store: PreferenceStore) -> None:
    await store.initialize()

    async with anyio.create_task_group() as tg:
        for model in ("p/one", "p/two", "p/three", "p/four"):
            tg.start_soon(store.upsert_user_preference, "@a:x", model)

    prefs = await store.list_user_preferences()
    assert len(prefs) == 1
    assert prefs[0].usage_count == 4
    assert prefs[0].model_id in {"p/one", "p/two", "p/three", "p/four"}


@pytest.mark.anyio
async def test_clear_preferences(store: PreferenceStore) -> None:
    await store.upsert_user_preference("@a:x", "p/one")
    await store.upsert_room_preference("!r:x", "p/one")

    assert await store.clear_user_preference("@a:x") is True
    assert await store.clear_user_preference("@a:x") is False
    assert await store.clear_room_preference("!r:x") is True
    assert await store.get_room_preference("!r:x") is None


@pytest.mark.anyio
async def test_preferences_survive_reopen(tmp_path: Path) -> None:
    path = tmp_path / "prefs.db"
    await PreferenceStore(path).upsert_user_preference("@a:x", "p/one")

    reopened = PreferenceStore(path)

    pref = await reopened.get_user_preference("@a:x")
    assert pref is not None
    assert pref.model_id == "p/one"


@pytest.mark.anyio
async def test_record_usage_and_top_models(store: PreferenceStore) -> None:
    assert await store.record_usage(
        "p/one", user_id="@a:x", room_id="!r:x", tokens_used=10, response_time_ms=100
    )
    await store.record_usage("p/one", user_id="@b:x", tokens_used=30, response_time_ms=300)
    await store.record_usage("p/two", user_id="@a:x")

    top = await store.top_models(5)
    assert [item.model_id for item in top] == ["p/one", "p/two"]
    assert top[0].usage_count == 2
    assert top[0].total_tokens == 40
    assert top[0].avg_response_time_ms == pytest.approx(200.0)

    mine = await store.user_stats("@a:x")
    assert {item.model_id for item in mine} == {"p/one", "p/two"}


@pytest.mark.anyio
async def test_record_switch_history(store: PreferenceStore) -> None:
    assert await store.record_switch("@a:x", "!r:x", "p/one", "p/two", "user")
    await store.record_switch("@b:x", None, None, "p/three", "session")

    history = await store.switch_history(10)
    assert [entry.new_model for entry in history] == ["p/three", "p/two"]
    assert history[1].previous_model == "p/one"
    assert history[1].scope == "user"

    only_a = await store.switch_history(10, user_id="@a:x")
    assert len(only_a) == 1


@pytest.mark.anyio
async def test_prune_usage_removes_old_rows(store: PreferenceStore) -> None:
    now = datetime(2026, 3, 1, tzinfo=timezone.utc)
    await store.record_usage("p/old", timestamp=now - timedelta(days=91))
    await store.record_usage("p/edge", timestamp=now - timedelta(days=89))
    await store.record_usage("p/new", timestamp=now)

    deleted = await store.prune_usage(90, now=now)

    assert deleted == 1
    remaining = {item.model_id for item in await store.top_models(10)}
    assert remaining == {"p/edge", "p/new"}


@pytest.mark.anyio
async def test_status_counts_rows(store: PreferenceStore) -> None:
    await store.upsert_user_preference("@a:x", "p/one")
    await store.upsert_room_preference("!r:x", "p/one")
    await store.record_usage("p/one")
    await store.record_switch(None, None, None, "p/one", "session")

    status = await store.status()

    assert status.user_preferences == 1
    assert status.room_preferences == 1
    assert status.usage_records == 1
    assert status.switch_history == 1
    assert status.database_size > 0


def test_utc_now_is_aware() -> None:
    assert utc_now().tzinfo is not None


@pytest.mark.anyio
async def test_unusable_path_raises_storage_unavailable(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    broken = PreferenceStore(blocker / "prefs.db")

    with pytest.raises(StorageUnavailableError):
        await broken.get_user_preference("@a:x")


@pytest.mark.anyio
async def test_telemetry_failures_return_false(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    broken = PreferenceStore(blocker / "prefs.db")

    assert await broken.record_usage("p/one") is False
    assert await broken.record_switch(None, None, None, "p/one", "session") is False
