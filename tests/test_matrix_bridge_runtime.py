"""Tests for bridge/runtime.py - startup sequence and maintenance."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from matrix_fixtures import FakeClient, make_bridge_config
from opencode_matrix.bridge.runtime import (
    _prune_usage,
    _send_startup,
    _startup_sequence,
    build_bridge,
)
from opencode_matrix.config import (
    BotConfig,
    CompletionSettings,
    MatrixSettings,
    ModelSettings,
)
from opencode_matrix.errors import StorageUnavailableError
from opencode_matrix.models.context import ModelContext


# --- _send_startup tests ---


@pytest.mark.anyio
async def test_send_startup_without_notification_room(
    model_context: ModelContext,
) -> None:
    """_send_startup does nothing when no notification room is set."""
    cfg, client = make_bridge_config(model_context)

    await _send_startup(cfg)

    assert client.sent == []


@pytest.mark.anyio
async def test_send_startup_mentions_session_model(
    model_context: ModelContext,
) -> None:
    """_send_startup posts the startup message and the session model."""
    cfg, client = make_bridge_config(
        model_context, notification_room="!ops:example.org"
    )

    await _send_startup(cfg)

    assert client.sent[0]["room_id"] == "!ops:example.org"
    assert cfg.startup_msg in client.last_text
    assert "cc-oaicomp/Kimi-K2.5" in client.last_text


# --- _startup_sequence tests ---


@pytest.mark.anyio
async def test_startup_sequence_login_fails(model_context: ModelContext) -> None:
    """_startup_sequence returns False when login fails."""
    client = FakeClient()
    client.login_result = False
    cfg, _ = make_bridge_config(
        model_context, client=client, notification_room="!ops:example.org"
    )

    result = await _startup_sequence(cfg)

    assert result is False
    assert client.sync_calls == 0
    assert client.sent == []


@pytest.mark.anyio
async def test_startup_sequence_success(model_context: ModelContext) -> None:
    """_startup_sequence logs in, syncs once and notifies."""
    client = FakeClient()
    cfg, _ = make_bridge_config(
        model_context, client=client, notification_room="!ops:example.org"
    )

    result = await _startup_sequence(cfg)

    assert result is True
    assert client.sync_calls == 1
    assert len(client.sent) == 1


# --- maintenance tests ---


@pytest.mark.anyio
async def test_prune_usage_uses_retention(model_context: ModelContext) -> None:
    cfg, _ = make_bridge_config(model_context)
    model_context.store.prune_usage = AsyncMock(return_value=3)  # type: ignore[method-assign]

    deleted = await _prune_usage(cfg)

    assert deleted == 3
    model_context.store.prune_usage.assert_awaited_once_with(90)


@pytest.mark.anyio
async def test_prune_usage_failure_is_not_fatal(model_context: ModelContext) -> None:
    cfg, _ = make_bridge_config(model_context)
    model_context.store.prune_usage = AsyncMock(  # type: ignore[method-assign]
        side_effect=StorageUnavailableError("database is locked")
    )

    assert await _prune_usage(cfg) == 0


# --- build_bridge tests ---


@pytest.mark.anyio
async def test_build_bridge_without_completion(tmp_path: Path) -> None:
    config = BotConfig(
        matrix=MatrixSettings(
            homeserver="https://matrix.example.org",
            user_id="@bot:example.org",
            access_token="token",
        ),
        models=ModelSettings(database_path=tmp_path / "prefs.db"),
        completion=CompletionSettings(),
    )

    cfg = await build_bridge(config)

    assert cfg.completion is None
    assert cfg.client.user_id == "@bot:example.org"
    assert cfg.models.session_model == "cc-oaicomp/Kimi-K2.5"
    await cfg.client.close()


@pytest.mark.anyio
async def test_build_bridge_with_completion(tmp_path: Path) -> None:
    config = BotConfig(
        matrix=MatrixSettings(
            homeserver="https://matrix.example.org",
            user_id="@bot:example.org",
            access_token="token",
        ),
        models=ModelSettings(database_path=tmp_path / "prefs.db"),
        completion=CompletionSettings(api_url="https://ai.example.org/v1"),
    )

    cfg = await build_bridge(config)

    assert cfg.completion is not None
    await cfg.completion.aclose()
    await cfg.client.close()
