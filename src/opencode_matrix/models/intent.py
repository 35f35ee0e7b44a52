"""Natural-language detection of model switch requests.

Detection is a deterministic keyword scorer. Every keyword list and weight
lives in :class:`KeywordTables` so the scorer can be exercised and extended
without touching the algorithm.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Literal

from .catalog import ModelDescriptor, api_model_id

Confidence = Literal["high", "medium", "low"]
KeywordKind = Literal["version", "model_id", "model_name", "brand", "other"]

VERSION_RE = re.compile(r"(\d+\.\d+)")
_VERSION_TOKEN_RE = re.compile(r"^\d+\.\d+$")

SWITCH_KEYWORDS: tuple[str, ...] = (
    "切换",
    "换成",
    "使用",
    "改用",
    "改为",
    "换到",
    "切到",
    "用",
    "切换到",
    "switch",
    "use",
    "change",
    "set",
    "select",
    "choose",
    "保存",
    "偏好",
    "设置",
    "设为",
    "指定",
    "选取",
)

# Table order matters: the first scope with a hit wins.
SCOPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("session", ("会话", "临时", "本次", "这次", "当前", "session", "temporary")),
    ("user", ("用户", "个人", "我的", "自己", "为我", "user", "personal", "my", "me")),
    ("room", ("房间", "群聊", "这里", "本房间", "room", "chat", "group")),
    ("global", ("全局", "全部", "所有", "系统", "global", "all", "system")),
)

PERSIST_KEYWORDS: tuple[str, ...] = ("永久", "保存", "偏好", "persistent", "preference")

# (marker found in the display name, keywords added for that model)
BRAND_SYNONYMS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("deepseek", ("deepseek", "深度求索")),
    ("kimi", ("kimi", "月之暗面")),
    ("gpt", ("gpt", "openai", "chatgpt")),
    ("claude", ("claude", "anthropic")),
    ("gemini", ("gemini", "谷歌")),
)

KEYWORD_POINTS: dict[str, int] = {
    "version": 10,
    "model_id": 8,
    "model_name": 6,
    "brand": 4,
    "other": 2,
}

HIGH_CONFIDENCE_SCORE = 10
MEDIUM_CONFIDENCE_SCORE = 5


@dataclass(frozen=True, slots=True)
class KeywordTables:
    switch_keywords: tuple[str, ...] = SWITCH_KEYWORDS
    scope_keywords: tuple[tuple[str, tuple[str, ...]], ...] = SCOPE_KEYWORDS
    persist_keywords: tuple[str, ...] = PERSIST_KEYWORDS
    persist_scope: str = "user"
    default_scope: str = "session"
    brand_synonyms: tuple[tuple[str, tuple[str, ...]], ...] = BRAND_SYNONYMS
    points: Mapping[str, int] = field(default_factory=lambda: dict(KEYWORD_POINTS))
    high_score: int = HIGH_CONFIDENCE_SCORE
    medium_score: int = MEDIUM_CONFIDENCE_SCORE

    @property
    def brand_vocabulary(self) -> frozenset[str]:
        return frozenset(
            word for _, synonyms in self.brand_synonyms for word in synonyms
        )


@dataclass(frozen=True, slots=True)
class SwitchIntent:
    model_id: str
    scope: str
    confidence: Confidence
    matched_keywords: tuple[str, ...]
    score: int


@dataclass(frozen=True, slots=True)
class _Candidate:
    model_id: str
    score: int
    matched: tuple[str, ...]


def _dedupe(items: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for item in items:
        if item:
            seen.setdefault(item, None)
    return list(seen)


class IntentDetector:
    """Pure, side-effect free scorer for "switch to model X" messages."""

    def __init__(
        self,
        *,
        aliases: Mapping[str, str] | None = None,
        tables: KeywordTables | None = None,
    ) -> None:
        self._aliases = dict(aliases or {})
        self._tables = tables or KeywordTables()
        self._brands = self._tables.brand_vocabulary

    @property
    def tables(self) -> KeywordTables:
        return self._tables

    def has_switch_trigger(self, lowered: str) -> bool:
        return any(keyword in lowered for keyword in self._tables.switch_keywords)

    def keywords_for(self, model: ModelDescriptor) -> list[str]:
        display = model.display_name.lower()
        keywords = [api_model_id(model.id).lower(), display, model.id.lower()]
        for marker, synonyms in self._tables.brand_synonyms:
            if marker in display:
                keywords.extend(synonyms)
        version = VERSION_RE.search(display)
        if version:
            keywords.append(version.group(1))
        keywords.extend(
            alias.lower()
            for alias, target in self._aliases.items()
            if target == model.id
        )
        return _dedupe(keywords)

    def classify(self, keyword: str, model: ModelDescriptor) -> KeywordKind:
        if _VERSION_TOKEN_RE.match(keyword):
            return "version"
        if "/" in keyword:
            return "model_id"
        if keyword == api_model_id(model.id).lower():
            return "model_name"
        if keyword in self._brands:
            return "brand"
        return "other"

    def _score(self, lowered: str, model: ModelDescriptor) -> _Candidate:
        score = 0
        matched: list[str] = []
        for keyword in self.keywords_for(model):
            if keyword in lowered:
                matched.append(keyword)
                score += self._tables.points[self.classify(keyword, model)]
        return _Candidate(model_id=model.id, score=score, matched=tuple(matched))

    def detect_scope(self, lowered: str) -> str:
        scope = self._tables.default_scope
        for name, words in self._tables.scope_keywords:
            if any(word in lowered for word in words):
                scope = name
                break
        if any(word in lowered for word in self._tables.persist_keywords):
            scope = self._tables.persist_scope
        return scope

    def confidence_for(self, score: int) -> Confidence:
        if score >= self._tables.high_score:
            return "high"
        if score >= self._tables.medium_score:
            return "medium"
        return "low"

    def detect(
        self, text: str, models: Sequence[ModelDescriptor]
    ) -> SwitchIntent | None:
        lowered = (text or "").lower()
        if not self.has_switch_trigger(lowered):
            return None
        best: _Candidate | None = None
        for model in models:
            candidate = self._score(lowered, model)
            if candidate.score > 0 and (best is None or candidate.score > best.score):
                best = candidate
        if best is None:
            return None
        return SwitchIntent(
            model_id=best.model_id,
            scope=self.detect_scope(lowered),
            confidence=self.confidence_for(best.score),
            matched_keywords=best.matched,
            score=best.score,
        )
