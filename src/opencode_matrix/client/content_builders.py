"""Content builders for Matrix message formatting."""

from __future__ import annotations

from typing import Any


def build_text_content(
    body: str,
    *,
    formatted_body: str | None = None,
    reply_to_event_id: str | None = None,
    notice: bool = False,
) -> dict[str, Any]:
    """Build ``m.room.message`` content, optionally as a reply."""
    content: dict[str, Any] = {
        "msgtype": "m.notice" if notice else "m.text",
        "body": body,
    }
    if formatted_body:
        content["format"] = "org.matrix.custom.html"
        content["formatted_body"] = formatted_body
    if reply_to_event_id is not None:
        content["m.relates_to"] = {
            "m.in_reply_to": {"event_id": reply_to_event_id},
        }
    return content
