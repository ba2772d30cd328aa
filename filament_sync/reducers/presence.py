from __future__ import annotations

from filament_sync.gateway.events import PresenceSyncEvent, PresenceUpdateEvent

OnlineMembers = frozenset[str]


def apply_presence_sync(online: OnlineMembers, event: PresenceSyncEvent) -> OnlineMembers:
    """A sync snapshot replaces the online set wholesale."""
    synced = frozenset(event.user_ids)
    return online if synced == online else synced


def apply_presence_update(online: OnlineMembers, event: PresenceUpdateEvent) -> OnlineMembers:
    if event.status == "online":
        if event.user_id in online:
            return online
        return online | {event.user_id}
    if event.user_id not in online:
        return online
    return online - {event.user_id}
