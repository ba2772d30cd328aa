"""Validated scalar types shared by domain models and gateway payloads.

All scalars are strict: a JSON ``true`` is not an integer, ``"5"`` is not a
count and ``1.0`` is not a timestamp.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import AfterValidator, Field, StrictInt, StrictStr, StringConstraints

from filament_sync.utils.ids import MAX_SAFE_INTEGER, ULID_PATTERN


def _uppercase(value: str) -> str:
    return value.upper()


def _reject_whitespace(value: str) -> str:
    if any(char.isspace() for char in value):
        raise ValueError("value cannot contain whitespace")
    return value


Ulid = Annotated[StrictStr, StringConstraints(pattern=ULID_PATTERN)]

# Counts and byte sizes: zero allowed
NonNegativeInt = Annotated[StrictInt, Field(ge=0, le=MAX_SAFE_INTEGER)]

# Unix seconds and role positions: zero is meaningless
PositiveInt = Annotated[StrictInt, Field(ge=1, le=MAX_SAFE_INTEGER)]
UnixTimestamp = PositiveInt

ColorHex = Annotated[
    StrictStr,
    StringConstraints(pattern=r"^#[0-9A-Fa-f]{6}$"),
    AfterValidator(_uppercase),
]

ReactionEmoji = Annotated[
    StrictStr,
    StringConstraints(min_length=1, max_length=32),
    AfterValidator(_reject_whitespace),
]

MessageContent = Annotated[StrictStr, StringConstraints(max_length=2000)]
GuildName = Annotated[StrictStr, StringConstraints(min_length=1, max_length=64)]
ChannelName = Annotated[StrictStr, StringConstraints(min_length=1, max_length=64)]
RoleName = Annotated[StrictStr, StringConstraints(min_length=1, max_length=32)]
PermissionName = Annotated[
    StrictStr, StringConstraints(pattern=r"^[a-z][a-z0-9_]{0,63}$")
]
Username = Annotated[
    StrictStr,
    StringConstraints(min_length=3, max_length=32),
    AfterValidator(_reject_whitespace),
]
VoiceIdentity = Annotated[StrictStr, StringConstraints(min_length=1, max_length=512)]
Filename = Annotated[StrictStr, StringConstraints(min_length=1, max_length=255)]
MimeType = Annotated[StrictStr, StringConstraints(min_length=1, max_length=128)]
