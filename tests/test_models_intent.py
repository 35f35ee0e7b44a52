"""Tests for natural-language switch detection."""

from __future__ import annotations

import pytest

from opencode_matrix.models.catalog import BUILTIN_MODELS, DEFAULT_ALIASES, ModelDescriptor
from opencode_matrix.models.intent import IntentDetector, KeywordTables

DEEPSEEK = "cc-oaicomp/DeepSeek-V3.2"
KIMI = "cc-oaicomp/Kimi-K2.5"
CODEX = "cc-openai/gpt-5.3-codex"


@pytest.fixture
def detector() -> IntentDetector:
    return IntentDetector(aliases=DEFAULT_ALIASES)


def test_no_trigger_returns_none(detector: IntentDetector) -> None:
    assert detector.detect("今天天气怎么样", BUILTIN_MODELS) is None
    assert detector.detect("deepseek is great", BUILTIN_MODELS) is None


def test_trigger_without_model_returns_none(detector: IntentDetector) -> None:
    assert detector.detect("please switch the lights off", BUILTIN_MODELS) is None


def test_empty_text(detector: IntentDetector) -> None:
    assert detector.detect("", BUILTIN_MODELS) is None


def test_brand_only_persistent_request(detector: IntentDetector) -> None:
    intent = detector.detect("切换到 deepseek 永久保存", BUILTIN_MODELS)

    assert intent is not None
    assert intent.model_id == DEEPSEEK
    assert intent.scope == "user"
    assert intent.matched_keywords == ("deepseek",)
    assert intent.score == 4
    assert intent.confidence == "low"


def test_version_makes_confidence_high(detector: IntentDetector) -> None:
    intent = detector.detect("切换到 deepseek v3.2 永久保存", BUILTIN_MODELS)

    assert intent is not None
    assert intent.model_id == DEEPSEEK
    assert intent.scope == "user"
    assert "3.2" in intent.matched_keywords
    assert intent.score == 16
    assert intent.confidence == "high"


def test_room_scope(detector: IntentDetector) -> None:
    intent = detector.detect("use kimi for this room", BUILTIN_MODELS)

    assert intent is not None
    assert intent.model_id == KIMI
    assert intent.scope == "room"


def test_default_scope_is_session(detector: IntentDetector) -> None:
    intent = detector.detect("switch to claude", BUILTIN_MODELS)

    assert intent is not None
    assert intent.model_id == "cc-claude/claude-3.5-sonnet"
    assert intent.scope == "session"


def test_session_scope_listed_first_wins(detector: IntentDetector) -> None:
    intent = detector.detect("临时 切换到 gemini，房间也可以", BUILTIN_MODELS)

    assert intent is not None
    assert intent.scope == "session"


def test_persistence_word_forces_user_scope(detector: IntentDetector) -> None:
    intent = detector.detect("房间 切换到 kimi 保存", BUILTIN_MODELS)

    assert intent is not None
    assert intent.scope == "user"


def test_full_id_scores_model_id_points(detector: IntentDetector) -> None:
    intent = detector.detect(f"switch to {KIMI}", BUILTIN_MODELS)

    assert intent is not None
    assert intent.model_id == KIMI
    # full id 8 + short name 6 + brand 4 + version 10
    assert intent.score == 28
    assert intent.confidence == "high"


def test_alias_scores_other_points(detector: IntentDetector) -> None:
    intent = detector.detect("switch to fast", BUILTIN_MODELS)

    assert intent is not None
    assert intent.model_id == DEEPSEEK
    assert intent.matched_keywords == ("fast",)
    assert intent.score == 2
    assert intent.confidence == "low"


def test_chinese_brand_synonym(detector: IntentDetector) -> None:
    intent = detector.detect("改用月之暗面的模型", BUILTIN_MODELS)

    assert intent is not None
    assert intent.model_id == KIMI


def test_tie_keeps_first_model_in_catalog_order() -> None:
    first = ModelDescriptor(id="acme/gpt-x", display_name="GPT X", provider="acme")
    second = ModelDescriptor(id="beta/gpt-y", display_name="GPT Y", provider="beta")
    detector = IntentDetector()

    intent = detector.detect("use openai please", [first, second])
    reversed_intent = detector.detect("use openai please", [second, first])

    assert intent is not None and reversed_intent is not None
    assert intent.model_id == "acme/gpt-x"
    assert reversed_intent.model_id == "beta/gpt-y"
    assert intent.score == 4
    assert intent.confidence in {"medium", "low"}


def test_highest_score_wins(detector: IntentDetector) -> None:
    intent = detector.detect("use gpt 5.3 codex", BUILTIN_MODELS)

    assert intent is not None
    assert intent.model_id == CODEX


def test_detection_is_deterministic(detector: IntentDetector) -> None:
    text = "请帮我切换到 deepseek v3.2"

    results = {detector.detect(text, BUILTIN_MODELS) for _ in range(5)}

    assert len(results) == 1


def test_keywords_for_deduplicates(detector: IntentDetector) -> None:
    model = ModelDescriptor(id="acme/small", display_name="small", provider="acme")

    assert detector.keywords_for(model) == ["small", "acme/small"]


@pytest.mark.parametrize(
    ("keyword", "expected"),
    [
        ("3.2", "version"),
        (DEEPSEEK.lower(), "model_id"),
        ("deepseek-v3.2", "model_name"),
        ("深度求索", "brand"),
        ("deepseek v3.2", "other"),
        ("fast", "other"),
    ],
)
def test_classify(detector: IntentDetector, keyword: str, expected: str) -> None:
    model = next(m for m in BUILTIN_MODELS if m.id == DEEPSEEK)

    assert detector.classify(keyword, model) == expected


def test_custom_tables() -> None:
    tables = KeywordTables(switch_keywords=("bitte",), persist_keywords=())
    detector = IntentDetector(tables=tables)

    assert detector.detect("switch to kimi", BUILTIN_MODELS) is None
    intent = detector.detect("bitte kimi", BUILTIN_MODELS)
    assert intent is not None
    assert intent.model_id == KIMI


@pytest.mark.parametrize(
    ("score", "confidence"),
    [(0, "low"), (4, "low"), (5, "medium"), (9, "medium"), (10, "high"), (30, "high")],
)
def test_confidence_thresholds(
    detector: IntentDetector, score: int, confidence: str
) -> None:
    assert detector.confidence_for(score) == confidence
