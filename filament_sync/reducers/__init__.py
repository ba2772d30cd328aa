"""Pure reducers folding gateway events into client state."""

from filament_sync.reducers.messages import (
    apply_message_create,
    apply_message_delete,
    apply_message_update,
    merge_message,
    merge_message_history,
)
from filament_sync.reducers.presence import apply_presence_sync, apply_presence_update
from filament_sync.reducers.profiles import (
    apply_profile_avatar_update,
    apply_profile_update,
)
from filament_sync.reducers.reactions import (
    ReactionOverlay,
    ReactionView,
    apply_message_reaction_update,
    clear_message_reactions,
    reaction_key,
    reaction_views_for_message,
)
from filament_sync.reducers.voice import (
    apply_voice_join,
    apply_voice_leave,
    apply_voice_stream_publish,
    apply_voice_stream_unpublish,
    apply_voice_sync,
    apply_voice_update,
)
from filament_sync.reducers.workspace import (
    apply_channel_create,
    apply_member_remove,
    apply_role_create,
    apply_role_delete,
    apply_role_reorder,
    apply_role_update,
    apply_workspace_update,
    remove_workspace,
)

__all__ = [
    "apply_message_create",
    "apply_message_delete",
    "apply_message_update",
    "merge_message",
    "merge_message_history",
    "apply_presence_sync",
    "apply_presence_update",
    "apply_profile_avatar_update",
    "apply_profile_update",
    "ReactionOverlay",
    "ReactionView",
    "apply_message_reaction_update",
    "clear_message_reactions",
    "reaction_key",
    "reaction_views_for_message",
    "apply_voice_join",
    "apply_voice_leave",
    "apply_voice_stream_publish",
    "apply_voice_stream_unpublish",
    "apply_voice_sync",
    "apply_voice_update",
    "apply_channel_create",
    "apply_member_remove",
    "apply_role_create",
    "apply_role_delete",
    "apply_role_reorder",
    "apply_role_update",
    "apply_workspace_update",
    "remove_workspace",
]
