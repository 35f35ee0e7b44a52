"""Types for the Matrix side of the bot."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class MatrixIncomingMessage:
    """Text message received from a Matrix room."""

    room_id: str
    event_id: str
    sender: str
    text: str
    transport: str = "matrix"
    reply_to_event_id: str | None = None
    thread_root_event_id: str | None = None
    formatted_body: str | None = None
