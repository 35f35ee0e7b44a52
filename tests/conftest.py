from __future__ import annotations

from pathlib import Path

import pytest

from opencode_matrix.models.catalog import ModelCatalog
from opencode_matrix.models.context import ModelContext
from opencode_matrix.models.store import PreferenceStore


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def catalog() -> ModelCatalog:
    catalog = ModelCatalog()
    catalog.load()
    return catalog


@pytest.fixture
def store(tmp_path: Path) -> PreferenceStore:
    return PreferenceStore(tmp_path / "model-preferences.db")


@pytest.fixture
def model_context(catalog: ModelCatalog, store: PreferenceStore) -> ModelContext:
    return ModelContext(catalog, store, default_model="cc-oaicomp/Kimi-K2.5")
