"""Fail-closed gateway event decoding.

``decode`` turns one ``(type, payload)`` pair into a typed event or ``None``.
It never raises: a missing field, a wrong type, an out-of-range number or an
unknown event type all produce ``None`` and the frame is dropped.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from filament_sync.gateway.events import EVENT_MODELS, GatewayEvent
from filament_sync.gateway.logger import logger

GATEWAY_PROTOCOL_VERSION = 1
MAX_FRAME_LENGTH = 64 * 1024  # bytes, UTF-8 encoded


@dataclass(frozen=True)
class Envelope:
    """One raw frame, split into its event type and untrusted payload."""

    event_type: str
    payload: Any


def decode(event_type: Any, raw_payload: Any) -> GatewayEvent | None:
    """Validate and normalize one event payload.

    Args:
        event_type: Wire event type, e.g. ``"message_create"``
        raw_payload: Parsed JSON payload (untrusted)

    Returns:
        The typed event, or None when the type is unknown or the payload
        does not match its schema exactly.
    """
    if not isinstance(event_type, str):
        logger.event_dropped(event_type, "event type is not a string")
        return None
    # Plain dict membership: "__proto__" and friends are just unknown keys
    model = EVENT_MODELS.get(event_type)
    if model is None:
        logger.event_dropped(event_type, "unknown event type")
        return None
    if not isinstance(raw_payload, dict):
        logger.event_dropped(event_type, "payload is not an object")
        return None
    try:
        return model.model_validate(raw_payload)
    except ValidationError as e:
        logger.event_dropped(event_type, f"{e.error_count()} validation error(s)")
        return None


def _frame_size(frame: str | bytes) -> int:
    if isinstance(frame, str):
        return len(frame.encode("utf-8", "surrogatepass"))
    return len(frame)


def parse_envelope(frame: str | bytes) -> Envelope | None:
    """Parse a raw gateway frame into an envelope.

    Accepts the versioned form ``{"v": 1, "t": type, "d": payload}`` and the
    plain form ``{"type": type, "payload": payload}``.
    """
    if _frame_size(frame) > MAX_FRAME_LENGTH:
        logger.event_dropped(None, "frame too large")
        return None
    try:
        data = json.loads(frame)
    except (ValueError, UnicodeDecodeError):
        logger.event_dropped(None, "frame is not valid JSON")
        return None
    except RecursionError:
        logger.event_dropped(None, "frame is nested too deeply")
        return None
    if not isinstance(data, dict):
        logger.event_dropped(None, "frame is not an object")
        return None

    if "t" in data:
        version = data.get("v")
        if type(version) is not int or version != GATEWAY_PROTOCOL_VERSION:
            logger.event_dropped(data.get("t"), "unsupported envelope version")
            return None
        event_type, payload = data.get("t"), data.get("d")
    else:
        event_type, payload = data.get("type"), data.get("payload")

    if not isinstance(event_type, str) or not event_type:
        logger.event_dropped(event_type, "missing event type")
        return None
    return Envelope(event_type=event_type, payload=payload)


def decode_frame(frame: str | bytes) -> GatewayEvent | None:
    """Parse and decode one raw frame in a single step."""
    envelope = parse_envelope(frame)
    if envelope is None:
        return None
    return decode(envelope.event_type, envelope.payload)
