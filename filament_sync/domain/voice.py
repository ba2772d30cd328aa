from __future__ import annotations

from typing import Literal

from pydantic import StrictBool

from filament_sync.domain.base import DomainModel
from filament_sync.domain.types import Ulid, UnixTimestamp, VoiceIdentity

VoiceStreamKind = Literal["microphone", "camera", "screen_share"]


class VoiceParticipant(DomainModel):
    """One connected identity (session) of a user in a voice channel."""

    user_id: Ulid
    identity: VoiceIdentity
    joined_at_unix: UnixTimestamp
    updated_at_unix: UnixTimestamp
    is_muted: StrictBool
    is_deafened: StrictBool
    is_speaking: StrictBool
    is_video_enabled: StrictBool
    is_screen_share_enabled: StrictBool
