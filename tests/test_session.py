"""Unit tests for filament_sync.services.session."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio

from conftest import CHANNEL_ID, GUILD_ID, OTHER_CHANNEL_ID, SELF_USER_ID, USER_ID, _message_payload, ulid
from filament_sync.api.client import AttachmentPreview, FilamentAPIError
from filament_sync.config.settings import SyncSettings
from filament_sync.domain import Message, MessageHistoryPage, Workspace
from filament_sync.gateway.controller import ConnectionState
from filament_sync.reducers.reactions import ReactionView, reaction_key
from filament_sync.services.session import SyncSession
from filament_sync.state import ClientState, StateStore

MESSAGE_ID = ulid(100)
IMAGE_ID = ulid(200)


def _page(*message_ids: str, next_before: str | None = None, **extra) -> MessageHistoryPage:
    return MessageHistoryPage(
        messages=tuple(Message.model_validate(_message_payload(mid, **extra)) for mid in message_ids),
        next_before=next_before,
    )


def _make_client() -> MagicMock:
    client = MagicMock()
    client.lookup_users_by_ids = AsyncMock(return_value={})
    client.fetch_workspace_snapshot = AsyncMock(return_value=[])
    client.get_channel_messages = AsyncMock(return_value=_page())
    client.add_message_reaction = AsyncMock(return_value=1)
    client.remove_message_reaction = AsyncMock(return_value=0)
    client.download_attachment_preview = AsyncMock(
        return_value=AttachmentPreview(data=b"png", mime_type="image/png")
    )
    return client


def _make_transport() -> MagicMock:
    transport = MagicMock()
    transport.connect = AsyncMock(return_value=MagicMock())
    return transport


@pytest_asyncio.fixture
async def session(workspace_payload):
    store = StateStore(ClientState(self_user_id=SELF_USER_ID))
    store.set_workspaces([Workspace.model_validate(workspace_payload)])
    session = SyncSession(
        SyncSettings(access_token="token"),
        _make_client(),
        _make_transport(),
        store=store,
        sleep=AsyncMock(),
    )
    yield session
    await session.close()


# ---------------------------------------------------------------------------
# TestOpenChannel
# ---------------------------------------------------------------------------


class TestOpenChannel:
    """Tests for SyncSession.open_channel."""

    @pytest.mark.asyncio
    async def test_loads_history_and_connects(self, session):
        session.client.get_channel_messages.return_value = _page(MESSAGE_ID)

        await session.open_channel(GUILD_ID, CHANNEL_ID)

        session.client.get_channel_messages.assert_awaited_once_with(GUILD_ID, CHANNEL_ID)
        assert [m.message_id for m in session.store.state.messages] == [MESSAGE_ID]
        args = session.gateway._transport.connect.await_args.args
        assert args[:3] == ("token", GUILD_ID, (CHANNEL_ID,))
        assert session.gateway.state is ConnectionState.CONNECTING

    @pytest.mark.asyncio
    async def test_history_attachments_feed_previews(self, session):
        attachment = {
            "attachment_id": IMAGE_ID,
            "filename": "cat.png",
            "mime_type": "image/png",
            "size_bytes": 10,
        }
        session.client.get_channel_messages.return_value = _page(MESSAGE_ID, attachments=[attachment])

        await session.open_channel(GUILD_ID, CHANNEL_ID)

        assert session.previews.target_ids == {IMAGE_ID}

    @pytest.mark.asyncio
    async def test_unknown_channel_disconnects(self, session):
        await session.open_channel(GUILD_ID, OTHER_CHANNEL_ID)

        session.client.get_channel_messages.assert_not_awaited()
        session.gateway._transport.connect.assert_not_awaited()
        assert session.gateway.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_refresh_workspaces(self, session, workspace_payload):
        renamed = Workspace.model_validate({**workspace_payload, "guild_name": "Renamed"})
        session.client.fetch_workspace_snapshot.return_value = [renamed]

        await session.refresh_workspaces()

        assert session.store.state.workspaces == (renamed,)


# ---------------------------------------------------------------------------
# TestHistory
# ---------------------------------------------------------------------------


class TestHistory:
    """Tests for SyncSession.load_older_messages."""

    @pytest.mark.asyncio
    async def test_requests_page_before_oldest(self, session):
        session.client.get_channel_messages.return_value = _page(ulid(101), ulid(102))
        await session.open_channel(GUILD_ID, CHANNEL_ID)
        session.client.get_channel_messages.return_value = _page(ulid(100), next_before=ulid(100))

        assert await session.load_older_messages(limit=20) is True

        session.client.get_channel_messages.assert_awaited_with(
            GUILD_ID, CHANNEL_ID, before=ulid(101), limit=20
        )
        assert [m.message_id for m in session.store.state.messages] == [ulid(100), ulid(101), ulid(102)]

    @pytest.mark.asyncio
    async def test_without_channel(self, session):
        assert await session.load_older_messages() is False


# ---------------------------------------------------------------------------
# TestReactions
# ---------------------------------------------------------------------------


class TestReactions:
    """Tests for SyncSession.toggle_reaction."""

    @pytest.mark.asyncio
    async def test_confirms_with_server_count(self, session):
        await session.open_channel(GUILD_ID, CHANNEL_ID)
        session.client.add_message_reaction.return_value = 5

        assert await session.toggle_reaction(MESSAGE_ID, "👍") is True

        session.client.add_message_reaction.assert_awaited_once_with(GUILD_ID, CHANNEL_ID, MESSAGE_ID, "👍")
        assert session.store.state.reaction_view() == {
            reaction_key(MESSAGE_ID, "👍"): ReactionView(count=5, reacted=True)
        }

    @pytest.mark.asyncio
    async def test_failure_rolls_back(self, session):
        await session.open_channel(GUILD_ID, CHANNEL_ID)
        session.client.add_message_reaction.side_effect = FilamentAPIError(403, "forbidden")

        with pytest.raises(FilamentAPIError):
            await session.toggle_reaction(MESSAGE_ID, "👍")

        assert session.store.state.reaction_view() == {}

    @pytest.mark.asyncio
    async def test_transport_failure_rolls_back(self, session):
        await session.open_channel(GUILD_ID, CHANNEL_ID)
        session.client.add_message_reaction.side_effect = httpx.ConnectError("down")

        with pytest.raises(httpx.ConnectError):
            await session.toggle_reaction(MESSAGE_ID, "👍")

        assert session.store.state.reaction_view() == {}

    @pytest.mark.asyncio
    async def test_requires_active_channel(self, session):
        with pytest.raises(ValueError):
            await session.toggle_reaction(MESSAGE_ID, "👍")


# ---------------------------------------------------------------------------
# TestUsernames
# ---------------------------------------------------------------------------


class TestUsernames:
    """Tests for SyncSession.resolve_usernames."""

    @pytest.mark.asyncio
    async def test_gateway_names_win_over_lookup(self, session):
        session.gateway.on_frame(
            '{"type": "profile_update", "payload": {"user_id": "%s", '
            '"updated_fields": {"username": "alice"}, "updated_at_unix": 1700000000}}' % USER_ID
        )
        session.client.lookup_users_by_ids.return_value = {ulid(12): "bob"}

        result = await session.resolve_usernames([USER_ID, ulid(12)])

        assert result == {USER_ID: "alice", ulid(12): "bob"}
        session.client.lookup_users_by_ids.assert_awaited_once_with([ulid(12)])


# ---------------------------------------------------------------------------
# TestAccessLoss
# ---------------------------------------------------------------------------


def _frame(event_type: str, payload: dict) -> str:
    return json.dumps({"v": 1, "t": event_type, "d": payload})


async def _open_stream(session: SyncSession) -> MagicMock:
    """Open the active channel and mark its stream live; returns the connection."""
    session.client.get_channel_messages.return_value = _page(MESSAGE_ID)
    await session.open_channel(GUILD_ID, CHANNEL_ID)
    on_open_change = session.gateway._transport.connect.await_args.args[4]
    on_open_change(True)
    assert session.gateway.state is ConnectionState.OPEN
    return session.gateway._transport.connect.return_value


class TestAccessLoss:
    """Tests for tearing the gateway down when the active channel goes away."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "event_type,extra",
        [
            ("workspace_member_remove", {"reason": "kick", "removed_at_unix": 1_700_000_100}),
            ("workspace_member_ban", {"banned_at_unix": 1_700_000_100}),
        ],
    )
    async def test_self_removal_disconnects(self, session, event_type, extra):
        connection = await _open_stream(session)
        payload = {"guild_id": GUILD_ID, "user_id": SELF_USER_ID, **extra}

        session.gateway.on_frame(_frame(event_type, payload))

        connection.close.assert_called_once()
        assert session.gateway.state is ConnectionState.DISCONNECTED
        assert session.gateway.guild_id is None
        state = session.store.state
        assert state.workspaces == ()
        assert state.active_guild_id is None
        assert state.messages == ()

    @pytest.mark.asyncio
    async def test_snapshot_without_channel_disconnects(self, session, workspace_payload):
        connection = await _open_stream(session)
        session.client.fetch_workspace_snapshot.return_value = [
            Workspace.model_validate({**workspace_payload, "channels": []})
        ]

        await session.refresh_workspaces()

        connection.close.assert_called_once()
        assert session.gateway.state is ConnectionState.DISCONNECTED
        assert session.store.state.active_channel_id is None

    @pytest.mark.asyncio
    async def test_other_member_removal_keeps_stream(self, session):
        connection = await _open_stream(session)

        session.gateway.on_frame(
            _frame(
                "workspace_member_remove",
                {"guild_id": GUILD_ID, "user_id": USER_ID, "reason": "kick", "removed_at_unix": 1_700_000_100},
            )
        )

        connection.close.assert_not_called()
        assert session.gateway.state is ConnectionState.OPEN

    @pytest.mark.asyncio
    async def test_role_change_refreshes_workspaces(self, session, workspace_payload):
        connection = await _open_stream(session)
        session.client.fetch_workspace_snapshot.return_value = []

        session.gateway.on_frame(
            _frame(
                "workspace_role_delete",
                {"guild_id": GUILD_ID, "role_id": ulid(21), "deleted_at_unix": 1_700_000_000},
            )
        )
        await session._refresh_task

        session.client.fetch_workspace_snapshot.assert_awaited_once()
        connection.close.assert_called_once()
        assert session.gateway.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_stream(self, session):
        connection = await _open_stream(session)
        session.client.fetch_workspace_snapshot.side_effect = httpx.ConnectError("down")

        session.gateway.on_frame(
            _frame(
                "workspace_role_delete",
                {"guild_id": GUILD_ID, "role_id": ulid(21), "deleted_at_unix": 1_700_000_000},
            )
        )
        await session._refresh_task

        connection.close.assert_not_called()
        assert session.gateway.state is ConnectionState.OPEN
