"""Client state snapshot and the store that owns it.

``ClientState`` is an immutable snapshot of everything the UI reads. The
``StateStore`` routes each decoded event to exactly one handler, swaps in the
resulting snapshot, bumps ``version`` and notifies listeners. Handlers return
the very same snapshot object when an event changes nothing (duplicates,
unknown references, events for another scope), so redundant deliveries
neither bump the version nor notify.

Usage:
    store = StateStore()
    store.set_scope(guild_id, channel_id)
    unsubscribe = store.subscribe(lambda state, version: render(state))
    store.apply(event)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from filament_sync.domain import Message, VoiceParticipant, Workspace
from filament_sync.gateway.events import (
    ChannelCreateEvent,
    GatewayEvent,
    MessageCreateEvent,
    MessageDeleteEvent,
    MessageReactionEvent,
    MessageUpdateEvent,
    PresenceSyncEvent,
    PresenceUpdateEvent,
    ProfileAvatarUpdateEvent,
    ProfileUpdateEvent,
    ReadyEvent,
    SubscribedEvent,
    VoiceParticipantJoinEvent,
    VoiceParticipantLeaveEvent,
    VoiceParticipantSyncEvent,
    VoiceParticipantUpdateEvent,
    VoiceStreamPublishEvent,
    VoiceStreamUnpublishEvent,
    WorkspaceMemberAddEvent,
    WorkspaceMemberBanEvent,
    WorkspaceMemberRemoveEvent,
    WorkspaceMemberUpdateEvent,
    WorkspaceRoleAssignmentAddEvent,
    WorkspaceRoleAssignmentRemoveEvent,
    WorkspaceRoleCreateEvent,
    WorkspaceRoleDeleteEvent,
    WorkspaceRoleReorderEvent,
    WorkspaceRoleUpdateEvent,
    WorkspaceUpdateEvent,
)
from filament_sync.reducers import messages as message_reducers
from filament_sync.reducers import presence as presence_reducers
from filament_sync.reducers import profiles as profile_reducers
from filament_sync.reducers import reactions as reaction_reducers
from filament_sync.reducers import voice as voice_reducers
from filament_sync.reducers import workspace as workspace_reducers
from filament_sync.reducers.reactions import (
    MessageReactionView,
    ReactionOverlay,
    ReactionView,
)


@dataclass(frozen=True)
class ClientState:
    """Everything the client currently knows, as one immutable value.

    ``messages`` and ``online_member_ids`` belong to the active scope
    (``active_guild_id`` / ``active_channel_id``) and are reset when it
    changes. The remaining fields span every workspace.
    """

    self_user_id: str | None = None
    active_guild_id: str | None = None
    active_channel_id: str | None = None
    subscribed_channel_ids: frozenset[str] = frozenset()
    workspaces: tuple[Workspace, ...] = ()
    messages: tuple[Message, ...] = ()
    reactions: ReactionOverlay = field(default_factory=ReactionOverlay)
    online_member_ids: frozenset[str] = frozenset()
    voice_rosters: Mapping[tuple[str, str], tuple[VoiceParticipant, ...]] = field(
        default_factory=dict
    )
    members: Mapping[str, Mapping[str, str]] = field(default_factory=dict)
    role_assignments: Mapping[str, Mapping[str, frozenset[str]]] = field(
        default_factory=dict
    )
    usernames: Mapping[str, str] = field(default_factory=dict)
    avatar_versions: Mapping[str, int] = field(default_factory=dict)

    def in_active_channel(self, guild_id: str, channel_id: str) -> bool:
        return guild_id == self.active_guild_id and channel_id == self.active_channel_id

    def reaction_view(self) -> dict[str, ReactionView]:
        return self.reactions.view()


def _evolve(state: ClientState, **changes: Any) -> ClientState:
    """``dataclasses.replace`` that keeps identity when nothing changed."""
    if all(getattr(state, name) is value for name, value in changes.items()):
        return state
    return replace(state, **changes)


# -----------------------------------------------------------------------------
# Event handlers: one per event class
# -----------------------------------------------------------------------------


def _on_ready(state: ClientState, event: ReadyEvent) -> ClientState:
    if state.self_user_id == event.user_id:
        return state
    return _evolve(state, self_user_id=event.user_id)


def _on_subscribed(state: ClientState, event: SubscribedEvent) -> ClientState:
    if event.guild_id != state.active_guild_id:
        return state
    if event.channel_id in state.subscribed_channel_ids:
        return state
    return _evolve(
        state, subscribed_channel_ids=state.subscribed_channel_ids | {event.channel_id}
    )


def _on_message_create(state: ClientState, event: MessageCreateEvent) -> ClientState:
    if not state.in_active_channel(event.guild_id, event.channel_id):
        return state
    return _evolve(
        state, messages=message_reducers.apply_message_create(state.messages, event)
    )


def _on_message_update(state: ClientState, event: MessageUpdateEvent) -> ClientState:
    if not state.in_active_channel(event.guild_id, event.channel_id):
        return state
    return _evolve(
        state, messages=message_reducers.apply_message_update(state.messages, event)
    )


def _on_message_delete(state: ClientState, event: MessageDeleteEvent) -> ClientState:
    if not state.in_active_channel(event.guild_id, event.channel_id):
        return state
    return _evolve(
        state,
        messages=message_reducers.apply_message_delete(state.messages, event),
        reactions=reaction_reducers.clear_message_reactions(
            state.reactions, event.message_id
        ),
    )


def _on_message_reaction(state: ClientState, event: MessageReactionEvent) -> ClientState:
    if not state.in_active_channel(event.guild_id, event.channel_id):
        return state
    return _evolve(
        state,
        reactions=reaction_reducers.apply_message_reaction_update(state.reactions, event),
    )


def _on_presence_sync(state: ClientState, event: PresenceSyncEvent) -> ClientState:
    if event.guild_id != state.active_guild_id:
        return state
    return _evolve(
        state,
        online_member_ids=presence_reducers.apply_presence_sync(
            state.online_member_ids, event
        ),
    )


def _on_presence_update(state: ClientState, event: PresenceUpdateEvent) -> ClientState:
    if event.guild_id != state.active_guild_id:
        return state
    return _evolve(
        state,
        online_member_ids=presence_reducers.apply_presence_update(
            state.online_member_ids, event
        ),
    )


def _on_channel_create(state: ClientState, event: ChannelCreateEvent) -> ClientState:
    return _evolve(
        state,
        workspaces=workspace_reducers.apply_channel_create(state.workspaces, event),
    )


def _on_workspace_update(state: ClientState, event: WorkspaceUpdateEvent) -> ClientState:
    return _evolve(
        state,
        workspaces=workspace_reducers.apply_workspace_update(state.workspaces, event),
    )


def _on_member_add(state: ClientState, event: WorkspaceMemberAddEvent) -> ClientState:
    return _evolve(
        state, members=workspace_reducers.apply_member_add(state.members, event)
    )


def _on_member_update(state: ClientState, event: WorkspaceMemberUpdateEvent) -> ClientState:
    return _evolve(
        state, members=workspace_reducers.apply_member_update(state.members, event)
    )


def _on_member_remove(
    state: ClientState, event: WorkspaceMemberRemoveEvent | WorkspaceMemberBanEvent
) -> ClientState:
    if event.user_id == state.self_user_id:
        # Kicked, banned or left: forget the guild entirely
        return _evolve(
            state,
            workspaces=workspace_reducers.apply_member_remove(
                state.workspaces, event, state.self_user_id
            ),
            members=workspace_reducers.drop_guild(state.members, event.guild_id),
            role_assignments=workspace_reducers.drop_guild(
                state.role_assignments, event.guild_id
            ),
        )
    return _evolve(
        state,
        members=workspace_reducers.remove_member(
            state.members, event.guild_id, event.user_id
        ),
    )


def _on_role_create(state: ClientState, event: WorkspaceRoleCreateEvent) -> ClientState:
    return _evolve(
        state, workspaces=workspace_reducers.apply_role_create(state.workspaces, event)
    )


def _on_role_update(state: ClientState, event: WorkspaceRoleUpdateEvent) -> ClientState:
    return _evolve(
        state, workspaces=workspace_reducers.apply_role_update(state.workspaces, event)
    )


def _on_role_delete(state: ClientState, event: WorkspaceRoleDeleteEvent) -> ClientState:
    return _evolve(
        state,
        workspaces=workspace_reducers.apply_role_delete(state.workspaces, event),
        role_assignments=workspace_reducers.drop_role_assignments(
            state.role_assignments, event.guild_id, event.role_id
        ),
    )


def _on_role_reorder(state: ClientState, event: WorkspaceRoleReorderEvent) -> ClientState:
    return _evolve(
        state, workspaces=workspace_reducers.apply_role_reorder(state.workspaces, event)
    )


def _on_role_assignment_add(
    state: ClientState, event: WorkspaceRoleAssignmentAddEvent
) -> ClientState:
    return _evolve(
        state,
        role_assignments=workspace_reducers.apply_role_assignment_add(
            state.role_assignments, event
        ),
    )


def _on_role_assignment_remove(
    state: ClientState, event: WorkspaceRoleAssignmentRemoveEvent
) -> ClientState:
    return _evolve(
        state,
        role_assignments=workspace_reducers.apply_role_assignment_remove(
            state.role_assignments, event
        ),
    )


def _voice_handler(
    reducer: Callable[[Any, Any], Any],
) -> Callable[[ClientState, Any], ClientState]:
    def handle(state: ClientState, event: Any) -> ClientState:
        return _evolve(state, voice_rosters=reducer(state.voice_rosters, event))

    return handle


def _on_profile_update(state: ClientState, event: ProfileUpdateEvent) -> ClientState:
    return _evolve(
        state, usernames=profile_reducers.apply_profile_update(state.usernames, event)
    )


def _on_profile_avatar_update(
    state: ClientState, event: ProfileAvatarUpdateEvent
) -> ClientState:
    return _evolve(
        state,
        avatar_versions=profile_reducers.apply_profile_avatar_update(
            state.avatar_versions, event
        ),
    )


Handler = Callable[[ClientState, Any], ClientState]

# Exactly one handler per event class; tests assert this covers EVENT_MODELS.
EVENT_HANDLERS: dict[type[GatewayEvent], Handler] = {
    ReadyEvent: _on_ready,
    SubscribedEvent: _on_subscribed,
    MessageCreateEvent: _on_message_create,
    MessageUpdateEvent: _on_message_update,
    MessageDeleteEvent: _on_message_delete,
    MessageReactionEvent: _on_message_reaction,
    PresenceSyncEvent: _on_presence_sync,
    PresenceUpdateEvent: _on_presence_update,
    ChannelCreateEvent: _on_channel_create,
    WorkspaceUpdateEvent: _on_workspace_update,
    WorkspaceMemberAddEvent: _on_member_add,
    WorkspaceMemberUpdateEvent: _on_member_update,
    WorkspaceMemberRemoveEvent: _on_member_remove,
    WorkspaceMemberBanEvent: _on_member_remove,
    WorkspaceRoleCreateEvent: _on_role_create,
    WorkspaceRoleUpdateEvent: _on_role_update,
    WorkspaceRoleDeleteEvent: _on_role_delete,
    WorkspaceRoleReorderEvent: _on_role_reorder,
    WorkspaceRoleAssignmentAddEvent: _on_role_assignment_add,
    WorkspaceRoleAssignmentRemoveEvent: _on_role_assignment_remove,
    VoiceParticipantSyncEvent: _voice_handler(voice_reducers.apply_voice_sync),
    VoiceParticipantJoinEvent: _voice_handler(voice_reducers.apply_voice_join),
    VoiceParticipantUpdateEvent: _voice_handler(voice_reducers.apply_voice_update),
    VoiceParticipantLeaveEvent: _voice_handler(voice_reducers.apply_voice_leave),
    VoiceStreamPublishEvent: _voice_handler(voice_reducers.apply_voice_stream_publish),
    VoiceStreamUnpublishEvent: _voice_handler(
        voice_reducers.apply_voice_stream_unpublish
    ),
    ProfileUpdateEvent: _on_profile_update,
    ProfileAvatarUpdateEvent: _on_profile_avatar_update,
}


def reduce(state: ClientState, event: GatewayEvent) -> ClientState:
    """Fold one event into a snapshot. Pure; never raises for a decoded event."""
    return EVENT_HANDLERS[type(event)](state, event)


# -----------------------------------------------------------------------------
# Store
# -----------------------------------------------------------------------------

StateListener = Callable[[ClientState, int], None]


class StateStore:
    """Owns the current ``ClientState`` and notifies listeners on change.

    All mutation goes through this class, on the event loop thread; each
    call swaps in a complete new snapshot, so readers never observe a
    half-applied update.
    """

    def __init__(self, state: ClientState | None = None) -> None:
        self._state = state or ClientState()
        self._version = 0
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def version(self) -> int:
        return self._version

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, state: ClientState) -> bool:
        if state is self._state:
            return False
        self._state = state
        self._version += 1
        for listener in list(self._listeners):
            listener(state, self._version)
        return True

    def apply(self, event: GatewayEvent) -> bool:
        """Apply one decoded event. Returns True if the snapshot changed."""
        return self._commit(reduce(self._state, event))

    # -------------------------------------------------------------------------
    # Scope
    # -------------------------------------------------------------------------

    def set_scope(self, guild_id: str | None, channel_id: str | None) -> bool:
        """Switch the active guild/channel, resetting scope-bound state."""
        state = self._state
        if state.active_guild_id == guild_id and state.active_channel_id == channel_id:
            return False
        guild_changed = state.active_guild_id != guild_id
        return self._commit(
            replace(
                state,
                active_guild_id=guild_id,
                active_channel_id=channel_id,
                messages=(),
                reactions=ReactionOverlay(),
                subscribed_channel_ids=(
                    frozenset() if guild_changed else state.subscribed_channel_ids
                ),
                online_member_ids=(
                    frozenset() if guild_changed else state.online_member_ids
                ),
            )
        )

    def clear_presence(self) -> bool:
        """Forget who is online and what is subscribed (used on access loss)."""
        return self._commit(
            _evolve(
                self._state,
                online_member_ids=frozenset(),
                subscribed_channel_ids=frozenset(),
            )
            if self._state.online_member_ids or self._state.subscribed_channel_ids
            else self._state
        )

    # -------------------------------------------------------------------------
    # REST-driven updates
    # -------------------------------------------------------------------------

    def set_workspaces(self, workspaces: Iterable[Workspace]) -> bool:
        workspaces = tuple(workspaces)
        if workspaces == self._state.workspaces:
            return False
        return self._commit(replace(self._state, workspaces=workspaces))

    def load_history(self, page: Iterable[Message]) -> bool:
        """Merge a page of older messages for the active channel."""
        state = self._state
        scoped = [
            message
            for message in page
            if state.in_active_channel(message.guild_id, message.channel_id)
        ]
        known = {message.message_id for message in state.messages}
        fresh = [message for message in scoped if message.message_id not in known]
        return self._commit(
            _evolve(
                state,
                messages=message_reducers.merge_message_history(state.messages, scoped),
                reactions=reaction_reducers.seed_message_reactions(
                    state.reactions, fresh
                ),
            )
        )

    # -------------------------------------------------------------------------
    # Optimistic reactions
    # -------------------------------------------------------------------------

    def toggle_reaction(self, message_id: str, emoji: str) -> tuple[str, bool]:
        """Flip the local user's reaction optimistically.

        Returns:
            (reaction key, True if the user now reacts)
        """
        key = reaction_reducers.reaction_key(message_id, emoji)
        overlay, reacted = reaction_reducers.toggle_reaction(self._state.reactions, key)
        self._commit(_evolve(self._state, reactions=overlay))
        return key, reacted

    def confirm_reaction(self, key: str, count: int) -> bool:
        """Settle a pending reaction with the count the server returned."""
        return self._commit(
            _evolve(
                self._state,
                reactions=reaction_reducers.confirm_reaction_count(
                    self._state.reactions, key, count
                ),
            )
        )

    def fail_reaction(self, key: str) -> bool:
        """Drop a pending reaction whose request failed."""
        return self._commit(
            _evolve(self._state, reactions=self._state.reactions.clear_pending(key))
        )

    def reaction_views(self, message_id: str) -> list[MessageReactionView]:
        return reaction_reducers.reaction_views_for_message(
            message_id, self._state.reaction_view()
        )
