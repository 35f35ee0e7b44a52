"""SQLite-backed store for model preferences, usage facts and switch history."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import partial
from pathlib import Path
from typing import Any, TypeVar

import anyio.to_thread

from ..errors import StorageUnavailableError
from ..log import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DB_FILENAME = "model-preferences.db"
DEFAULT_SET_BY = "system"

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS user_model_preferences (
      id INTEGER PRIMARY KEY AUTOINCREMENT,
      user_id TEXT NOT NULL UNIQUE,
      model_id TEXT NOT NULL,
      last_used TEXT NOT NULL,
      usage_count INTEGER NOT NULL DEFAULT 0,
      created_at TEXT NOT NULL,
      updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS room_model_preferences (
      id INTEGER PRIMARY KEY AUTOINCREMENT,
      room_id TEXT NOT NULL UNIQUE,
      model_id TEXT NOT NULL,
      set_by_user TEXT,
      set_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS model_usage_stats (
      id INTEGER PRIMARY KEY AUTOINCREMENT,
      model_id TEXT NOT NULL,
      user_id TEXT,
      room_id TEXT,
      tokens_used INTEGER NOT NULL DEFAULT 0,
      response_time_ms INTEGER NOT NULL DEFAULT 0,
      timestamp TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS model_switch_history (
      id INTEGER PRIMARY KEY AUTOINCREMENT,
      user_id TEXT,
      room_id TEXT,
      previous_model TEXT,
      new_model TEXT NOT NULL,
      scope TEXT NOT NULL,
      timestamp TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_usage_stats_model ON model_usage_stats(model_id)",
    "CREATE INDEX IF NOT EXISTS idx_usage_stats_timestamp ON model_usage_stats(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_usage_stats_user ON model_usage_stats(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_switch_history_user ON model_switch_history(user_id)",
)


@dataclass(frozen=True, slots=True)
class UserPreference:
    user_id: str
    model_id: str
    last_used_at: datetime
    usage_count: int
    created_at: datetime


@dataclass(frozen=True, slots=True)
class RoomPreference:
    room_id: str
    model_id: str
    set_by_user: str | None
    set_at: datetime


@dataclass(frozen=True, slots=True)
class SwitchHistoryEntry:
    user_id: str | None
    room_id: str | None
    previous_model: str | None
    new_model: str
    scope: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class ModelUsageSummary:
    model_id: str
    usage_count: int
    total_tokens: int
    avg_response_time_ms: float


@dataclass(frozen=True, slots=True)
class StoreStatus:
    user_preferences: int
    room_preferences: int
    usage_records: int
    switch_history: int
    database_size: int


def resolve_store_path(config_path: Path) -> Path:
    """Get the default database path, adjacent to config."""
    return config_path.with_name(DB_FILENAME)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _format_ts(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _user_row(row: sqlite3.Row) -> UserPreference:
    return UserPreference(
        user_id=row["user_id"],
        model_id=row["model_id"],
        last_used_at=_parse_ts(row["last_used"]),
        usage_count=int(row["usage_count"]),
        created_at=_parse_ts(row["created_at"]),
    )


def _room_row(row: sqlite3.Row) -> RoomPreference:
    return RoomPreference(
        room_id=row["room_id"],
        model_id=row["model_id"],
        set_by_user=row["set_by_user"],
        set_at=_parse_ts(row["set_at"]),
    )


class PreferenceStore:
    """Durable per-user and per-room model overrides plus telemetry tables.

    Every mutation is a single SQL statement so that concurrent writers to the
    same key are serialized by SQLite's unique constraints; the store holds no
    locks of its own. Work runs in a worker thread with one connection per
    operation.
    """

    def __init__(self, path: Path, *, timeout: float = 30.0) -> None:
        self._path = path
        self._timeout = timeout
        self._initialized = False

    @property
    def path(self) -> Path:
        return self._path

    async def initialize(self) -> None:
        if self._initialized:
            return
        await self._run(self._create_schema)
        self._initialized = True
        logger.info("matrix.models.store.initialized", path=str(self._path))

    def _connect(self) -> sqlite3.Connection:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._path, timeout=self._timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA busy_timeout=5000;")
        return conn

    def _execute(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        conn = self._connect()
        try:
            with conn:
                return fn(conn)
        finally:
            conn.close()

    async def _run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        try:
            return await anyio.to_thread.run_sync(partial(self._execute, fn))
        except (sqlite3.Error, OSError) as exc:
            raise StorageUnavailableError(str(exc)) from exc

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    @staticmethod
    def _create_schema(conn: sqlite3.Connection) -> None:
        for statement in _SCHEMA:
            conn.execute(statement)

    async def upsert_user_preference(self, user_id: str, model_id: str) -> UserPreference:
        await self._ensure_initialized()
        now = _format_ts(utc_now())

        def op(conn: sqlite3.Connection) -> UserPreference:
            conn.execute(
                """
                INSERT INTO user_model_preferences
                  (user_id, model_id, last_used, usage_count, created_at, updated_at)
                VALUES (?, ?, ?, 1, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                  model_id=excluded.model_id,
                  last_used=excluded.last_used,
                  updated_at=excluded.updated_at,
                  usage_count=user_model_preferences.usage_count + 1
                """,
                (user_id, model_id, now, now, now),
            )
            row = conn.execute(
                "SELECT * FROM user_model_preferences WHERE user_id = ?", (user_id,)
            ).fetchone()
            return _user_row(row)

        return await self._run(op)

    async def upsert_room_preference(
        self, room_id: str, model_id: str, set_by: str | None = DEFAULT_SET_BY
    ) -> RoomPreference:
        await self._ensure_initialized()
        now = _format_ts(utc_now())
        set_by = set_by or DEFAULT_SET_BY

        def op(conn: sqlite3.Connection) -> RoomPreference:
            conn.execute(
                """
                INSERT INTO room_model_preferences (room_id, model_id, set_by_user, set_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(room_id) DO UPDATE SET
                  model_id=excluded.model_id,
                  set_by_user=excluded.set_by_user,
                  set_at=excluded.set_at
                """,
                (room_id, model_id, set_by, now),
            )
            row = conn.execute(
                "SELECT * FROM room_model_preferences WHERE room_id = ?", (room_id,)
            ).fetchone()
            return _room_row(row)

        return await self._run(op)

    async def get_user_preference(self, user_id: str) -> UserPreference | None:
        await self._ensure_initialized()

        def op(conn: sqlite3.Connection) -> UserPreference | None:
            row = conn.execute(
                "SELECT * FROM user_model_preferences WHERE user_id = ?", (user_id,)
            ).fetchone()
            return _user_row(row) if row is not None else None

        return await self._run(op)

    async def get_room_preference(self, room_id: str) -> RoomPreference | None:
        await self._ensure_initialized()

        def op(conn: sqlite3.Connection) -> RoomPreference | None:
            row = conn.execute(
                "SELECT * FROM room_model_preferences WHERE room_id = ?", (room_id,)
            ).fetchone()
            return _room_row(row) if row is not None else None

        return await self._run(op)

    async def clear_user_preference(self, user_id: str) -> bool:
        await self._ensure_initialized()
        return await self._run(
            lambda conn: conn.execute(
                "DELETE FROM user_model_preferences WHERE user_id = ?", (user_id,)
            ).rowcount
            > 0
        )

    async def clear_room_preference(self, room_id: str) -> bool:
        await self._ensure_initialized()
        return await self._run(
            lambda conn: conn.execute(
                "DELETE FROM room_model_preferences WHERE room_id = ?", (room_id,)
            ).rowcount
            > 0
        )

    async def list_user_preferences(self) -> list[UserPreference]:
        await self._ensure_initialized()
        return await self._run(
            lambda conn: [
                _user_row(row)
                for row in conn.execute(
                    "SELECT * FROM user_model_preferences ORDER BY usage_count DESC"
                )
            ]
        )

    async def list_room_preferences(self) -> list[RoomPreference]:
        await self._ensure_initialized()
        return await self._run(
            lambda conn: [
                _room_row(row)
                for row in conn.execute(
                    "SELECT * FROM room_model_preferences ORDER BY set_at DESC"
                )
            ]
        )

    async def record_usage(
        self,
        model_id: str,
        *,
        user_id: str | None = None,
        room_id: str | None = None,
        tokens_used: int = 0,
        response_time_ms: int = 0,
        timestamp: datetime | None = None,
    ) -> bool:
        """Insert a usage fact. Failures are logged and reported as False."""
        stamp = _format_ts(timestamp or utc_now())
        try:
            await self._ensure_initialized()
            await self._run(
                lambda conn: conn.execute(
                    """
                    INSERT INTO model_usage_stats
                      (model_id, user_id, room_id, tokens_used, response_time_ms, timestamp)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        model_id,
                        user_id,
                        room_id,
                        int(tokens_used),
                        int(response_time_ms),
                        stamp,
                    ),
                )
            )
        except StorageUnavailableError as exc:
            logger.warning(
                "matrix.models.store.record_usage_failed",
                model_id=model_id,
                error=str(exc),
            )
            return False
        return True

    async def record_switch(
        self,
        user_id: str | None,
        room_id: str | None,
        previous_model: str | None,
        new_model: str,
        scope: str,
    ) -> bool:
        """Append to the switch audit trail. Failures are logged, not raised."""
        stamp = _format_ts(utc_now())
        try:
            await self._ensure_initialized()
            await self._run(
                lambda conn: conn.execute(
                    """
                    INSERT INTO model_switch_history
                      (user_id, room_id, previous_model, new_model, scope, timestamp)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (user_id, room_id, previous_model, new_model, scope, stamp),
                )
            )
        except StorageUnavailableError as exc:
            logger.warning(
                "matrix.models.store.record_switch_failed",
                new_model=new_model,
                error=str(exc),
            )
            return False
        return True

    async def prune_usage(self, max_age_days: int, *, now: datetime | None = None) -> int:
        await self._ensure_initialized()
        cutoff = _format_ts((now or utc_now()) - timedelta(days=max_age_days))
        deleted = await self._run(
            lambda conn: conn.execute(
                "DELETE FROM model_usage_stats WHERE timestamp < ?", (cutoff,)
            ).rowcount
        )
        logger.info(
            "matrix.models.store.usage_pruned",
            deleted=deleted,
            max_age_days=max_age_days,
        )
        return deleted

    async def top_models(self, limit: int = 10) -> list[ModelUsageSummary]:
        await self._ensure_initialized()

        def op(conn: sqlite3.Connection) -> list[ModelUsageSummary]:
            rows = conn.execute(
                """
                SELECT model_id,
                       COUNT(*) AS usage_count,
                       COALESCE(SUM(tokens_used), 0) AS total_tokens,
                       COALESCE(AVG(response_time_ms), 0) AS avg_response_time
                FROM model_usage_stats
                GROUP BY model_id
                ORDER BY usage_count DESC, model_id
                LIMIT ?
                """,
                (int(limit),),
            )
            return [_summary_row(row) for row in rows]

        return await self._run(op)

    async def user_stats(self, user_id: str) -> list[ModelUsageSummary]:
        await self._ensure_initialized()

        def op(conn: sqlite3.Connection) -> list[ModelUsageSummary]:
            rows = conn.execute(
                """
                SELECT model_id,
                       COUNT(*) AS usage_count,
                       COALESCE(SUM(tokens_used), 0) AS total_tokens,
                       COALESCE(AVG(response_time_ms), 0) AS avg_response_time
                FROM model_usage_stats
                WHERE user_id = ?
                GROUP BY model_id
                ORDER BY usage_count DESC, model_id
                """,
                (user_id,),
            )
            return [_summary_row(row) for row in rows]

        return await self._run(op)

    async def switch_history(
        self, limit: int = 20, *, user_id: str | None = None
    ) -> list[SwitchHistoryEntry]:
        await self._ensure_initialized()

        def op(conn: sqlite3.Connection) -> list[SwitchHistoryEntry]:
            query = "SELECT * FROM model_switch_history"
            params: tuple[Any, ...] = ()
            if user_id is not None:
                query += " WHERE user_id = ?"
                params = (user_id,)
            query += " ORDER BY id DESC LIMIT ?"
            rows = conn.execute(query, (*params, int(limit)))
            return [
                SwitchHistoryEntry(
                    user_id=row["user_id"],
                    room_id=row["room_id"],
                    previous_model=row["previous_model"],
                    new_model=row["new_model"],
                    scope=row["scope"],
                    timestamp=_parse_ts(row["timestamp"]),
                )
                for row in rows
            ]

        return await self._run(op)

    async def status(self) -> StoreStatus:
        await self._ensure_initialized()

        def count(conn: sqlite3.Connection, table: str) -> int:
            return int(conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])

        def op(conn: sqlite3.Connection) -> tuple[int, int, int, int]:
            return (
                count(conn, "user_model_preferences"),
                count(conn, "room_model_preferences"),
                count(conn, "model_usage_stats"),
                count(conn, "model_switch_history"),
            )

        users, rooms, usage, history = await self._run(op)
        try:
            size = self._path.stat().st_size
        except OSError:
            size = 0
        return StoreStatus(
            user_preferences=users,
            room_preferences=rooms,
            usage_records=usage,
            switch_history=history,
            database_size=size,
        )


def _summary_row(row: sqlite3.Row) -> ModelUsageSummary:
    return ModelUsageSummary(
        model_id=row["model_id"],
        usage_count=int(row["usage_count"]),
        total_tokens=int(row["total_tokens"]),
        avg_response_time_ms=float(row["avg_response_time"]),
    )
