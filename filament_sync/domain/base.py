from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class DomainModel(BaseModel):
    """Immutable, validated record.

    Unknown fields are ignored so servers can add fields (``trace_context``
    and the like) without breaking older clients.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)
