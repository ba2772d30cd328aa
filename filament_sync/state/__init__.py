"""Immutable client state and its owning store."""

from filament_sync.state.store import (
    EVENT_HANDLERS,
    ClientState,
    StateListener,
    StateStore,
    reduce,
)

__all__ = [
    "EVENT_HANDLERS",
    "ClientState",
    "StateListener",
    "StateStore",
    "reduce",
]
