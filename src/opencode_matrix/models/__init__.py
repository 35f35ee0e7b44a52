"""Model preference core: catalog, store, resolver, switching and intent."""

from __future__ import annotations

from .catalog import BUILTIN_MODELS, ModelCatalog, ModelDescriptor, is_valid_model_id
from .context import ContextStatus, ModelContext
from .intent import IntentDetector, KeywordTables, SwitchIntent
from .resolver import ModelResolution, PreferenceResolver, SessionModel
from .store import PreferenceStore
from .switch import SwitchCoordinator, SwitchResult, TelemetryOutcome, parse_scope

__all__ = [
    "BUILTIN_MODELS",
    "ContextStatus",
    "IntentDetector",
    "KeywordTables",
    "ModelCatalog",
    "ModelContext",
    "ModelDescriptor",
    "ModelResolution",
    "PreferenceResolver",
    "PreferenceStore",
    "SessionModel",
    "SwitchCoordinator",
    "SwitchIntent",
    "SwitchResult",
    "TelemetryOutcome",
    "is_valid_model_id",
    "parse_scope",
]
