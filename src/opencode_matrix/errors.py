"""Exception types shared across the bot."""

from __future__ import annotations


class OpencodeMatrixError(Exception):
    """Base class for errors raised by opencode-matrix."""


class ConfigError(OpencodeMatrixError):
    """Configuration is missing or malformed."""


class ModelSwitchError(OpencodeMatrixError):
    """A requested model switch was rejected; the message is user-facing."""


class InvalidModelFormatError(ModelSwitchError):
    def __init__(self, model_id: str) -> None:
        super().__init__(
            f"invalid model id `{model_id}`. expected format: provider/model-name"
        )
        self.model_id = model_id


class ModelUnavailableError(ModelSwitchError):
    def __init__(self, model_id: str) -> None:
        super().__init__(f"model `{model_id}` is not available")
        self.model_id = model_id


class InvalidScopeError(ModelSwitchError):
    def __init__(self, scope: str) -> None:
        super().__init__(
            f"unknown scope `{scope}`. use session, user, room, global or all"
        )
        self.scope = scope


class ModelNotFoundError(OpencodeMatrixError, KeyError):
    def __init__(self, model_id: str) -> None:
        super().__init__(model_id)
        self.model_id = model_id

    def __str__(self) -> str:
        return f"model config not found: {self.model_id}"


class StorageUnavailableError(OpencodeMatrixError):
    """The preference database could not be read or written."""


class CompletionError(OpencodeMatrixError):
    """The remote completion call failed."""
