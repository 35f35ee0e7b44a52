"""Matrix transport."""

from __future__ import annotations

from .content_builders import build_text_content
from .matrix import MatrixClient, message_from_event

__all__ = ["MatrixClient", "build_text_content", "message_from_event"]
