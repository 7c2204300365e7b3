"""Tests for the update decoder and the capability methods of its variants."""

import sys
import os
from unittest.mock import MagicMock, call

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from sdk.capabilities import Callback, ChatMethods, Forwardable, Pinnable
from sdk.exceptions import DecodeError
from sdk.updates import (
    UNHANDLED,
    UPDATE_FIELDS,
    UPDATE_KINDS,
    CallbackQueryUpdate,
    ChatMemberUpdate,
    EditedMessageUpdate,
    InlineQueryUpdate,
    MessageUpdate,
    PollAnswerUpdate,
    decode_update,
)

USER = {"id": 7, "is_bot": False, "first_name": "Ann"}
CHAT = {"id": 1000, "type": "private"}


def _message(**content) -> dict:
    return {"message_id": 1, "date": 0, "chat": CHAT, "from": USER, **content}


def _command(text: str, length: int) -> dict:
    return _message(text=text, entities=[{"type": "bot_command", "offset": 0, "length": length}])


# ── Routing ──────────────────────────────────────────────────────────────────


class TestDecodeRouting:
    """Each payload field maps to exactly one variant."""

    def test_text_message(self) -> None:
        update = decode_update({"update_id": 1, "message": _message(text="hello")})
        assert isinstance(update, MessageUpdate)
        assert update.kind == "text"
        assert update.source == "message"
        assert update.update_id == 1
        assert update.text == "hello"
        assert update.payload is update.message

    def test_channel_post_uses_message_variant(self) -> None:
        update = decode_update({"update_id": 2, "channel_post": _message(text="news")})
        assert isinstance(update, MessageUpdate)
        assert update.source == "channel_post"

    def test_edited_message(self) -> None:
        update = decode_update({"update_id": 3, "edited_message": _message(text="fixed", edit_date=5)})
        assert isinstance(update, EditedMessageUpdate)
        assert update.kind == "edited_text"

    def test_photo_with_caption(self) -> None:
        photo = [{"file_id": "f", "file_unique_id": "u", "width": 1, "height": 1}]
        update = decode_update({"update_id": 4, "message": _message(photo=photo, caption="cat")})
        assert update.kind == "photo"
        assert update.text == "cat"

    def test_venue_wins_over_location(self) -> None:
        location = {"latitude": 1.0, "longitude": 2.0}
        venue = {"location": location, "title": "Cafe", "address": "Main St"}
        update = decode_update({"update_id": 5, "message": _message(venue=venue, location=location)})
        assert update.kind == "venue"

    def test_service_message(self) -> None:
        update = decode_update({"update_id": 6, "message": _message(new_chat_members=[USER])})
        assert update.kind == "new_members"

    def test_unmapped_content_is_unhandled(self) -> None:
        update = decode_update({"update_id": 7, "message": _message(story={"id": 1})})
        assert isinstance(update, MessageUpdate)
        assert update.kind == UNHANDLED

    def test_data_callback(self) -> None:
        raw = {"update_id": 8, "callback_query": {"id": "cb1", "from": USER, "chat_instance": "ci", "data": "yes"}}
        update = decode_update(raw)
        assert isinstance(update, CallbackQueryUpdate)
        assert update.kind == "data_callback"
        assert update.callback_query_id == "cb1"

    def test_game_callback(self) -> None:
        raw = {"update_id": 9, "callback_query": {
            "id": "cb2", "from": USER, "chat_instance": "ci", "game_short_name": "snake",
        }}
        assert decode_update(raw).kind == "game_callback"

    def test_inline_query(self) -> None:
        raw = {"update_id": 10, "inline_query": {"id": "q", "from": USER, "query": "cats", "offset": ""}}
        update = decode_update(raw)
        assert isinstance(update, InlineQueryUpdate)
        assert update.kind == "inline"

    def test_poll_answer(self) -> None:
        raw = {"update_id": 11, "poll_answer": {"poll_id": "p", "option_ids": [0], "user": USER}}
        assert isinstance(decode_update(raw), PollAnswerUpdate)

    def test_my_chat_member(self) -> None:
        member = {"status": "member", "user": USER}
        raw = {"update_id": 12, "my_chat_member": {
            "chat": CHAT, "from": USER, "date": 0,
            "old_chat_member": {**member, "status": "left"}, "new_chat_member": member,
        }}
        update = decode_update(raw)
        assert isinstance(update, ChatMemberUpdate)
        assert update.kind == "my_chat_member"
        assert update.source == "my_chat_member"

    def test_client_is_bound(self) -> None:
        client = MagicMock()
        update = decode_update({"update_id": 1, "message": _message(text="x")}, client)
        assert update.bot() is client

    def test_every_static_kind_is_known(self) -> None:
        for route in UPDATE_FIELDS.values():
            if isinstance(route.kind, str):
                assert route.kind in UPDATE_KINDS
        assert {"text", "command", "edited_text", "data_callback", UNHANDLED} <= UPDATE_KINDS


# ── Failures ─────────────────────────────────────────────────────────────────


class TestDecodeErrors:
    """Undecodable updates raise DecodeError with a reason."""

    def test_unknown_payload_field(self) -> None:
        with pytest.raises(DecodeError) as exc_info:
            decode_update({"update_id": 101, "some_future_kind": {"a": 1}})
        exc = exc_info.value
        assert exc.reason == "no-known-payload"
        assert exc.update_id == 101
        assert exc.detail == ["some_future_kind"]
        assert b"some_future_kind" in exc.raw

    def test_no_payload(self) -> None:
        with pytest.raises(DecodeError) as exc_info:
            decode_update({"update_id": 1})
        assert exc_info.value.reason == "no-known-payload"

    def test_two_payloads(self) -> None:
        raw = {"update_id": 1, "message": _message(text="a"), "edited_message": _message(text="b")}
        with pytest.raises(DecodeError) as exc_info:
            decode_update(raw)
        assert exc_info.value.reason == "ambiguous-payload"

    def test_invalid_payload(self) -> None:
        with pytest.raises(DecodeError) as exc_info:
            decode_update({"update_id": 1, "message": {"message_id": "nope"}})
        assert exc_info.value.reason == "invalid-payload"
        assert exc_info.value.update_id == 1

    def test_missing_update_id(self) -> None:
        with pytest.raises(DecodeError) as exc_info:
            decode_update({"message": _message(text="a")})
        assert exc_info.value.reason == "missing-update-id"
        assert exc_info.value.update_id is None

    def test_not_an_object(self) -> None:
        with pytest.raises(DecodeError) as exc_info:
            decode_update([1, 2])
        assert exc_info.value.reason == "not-an-object"


# ── Commands ─────────────────────────────────────────────────────────────────


class TestCommands:
    """Commands are text messages starting with a bot_command entity."""

    def test_command_kind_and_args(self) -> None:
        update = decode_update({"update_id": 1, "message": _command("/start hello world", 6)})
        assert update.kind == "command"
        assert update.command == "start"
        assert update.command_args == "hello world"

    def test_command_with_bot_username(self) -> None:
        update = decode_update({"update_id": 1, "message": _command("/help@my_bot", 12)})
        assert update.command == "help"
        assert update.command_args == ""

    def test_command_not_at_start_is_text(self) -> None:
        raw = _message(text="say /start", entities=[{"type": "bot_command", "offset": 4, "length": 6}])
        update = decode_update({"update_id": 1, "message": raw})
        assert update.kind == "text"
        assert update.command is None

    def test_edited_command(self) -> None:
        update = decode_update({"update_id": 1, "edited_message": _command("/start", 6)})
        assert update.kind == "edited_command"


# ── Capabilities ─────────────────────────────────────────────────────────────


class TestCapabilities:
    """Variants expose the methods their capabilities allow."""

    def test_capability_sets(self) -> None:
        message = decode_update({"update_id": 1, "message": _message(text="x")})
        edited = decode_update({"update_id": 2, "edited_message": _message(text="x")})
        callback = decode_update({"update_id": 3, "callback_query": {
            "id": "cb", "from": USER, "chat_instance": "ci",
        }})
        assert all(isinstance(message, cap) for cap in (ChatMethods, Forwardable, Pinnable))
        assert isinstance(edited, Pinnable)
        assert not isinstance(edited, Forwardable)
        assert isinstance(callback, Callback)
        assert not isinstance(callback, ChatMethods)

    @pytest.mark.asyncio
    async def test_send_message_in_reply(self) -> None:
        client = MagicMock()
        update = decode_update({"update_id": 1, "message": _message(text="ping")}, client)
        await update.send_message_in_reply("pong")
        client.send_message.assert_called_once_with(1000, "pong", reply_to_message_id=1)

    @pytest.mark.asyncio
    async def test_business_reply_uses_connection(self) -> None:
        client = MagicMock()
        raw = {"update_id": 1, "business_message": _message(text="ping", business_connection_id="bc1")}
        update = decode_update(raw, client)
        assert update.business_connection_id == "bc1"

        await update.send_message_in_reply("pong")
        await update.send_message("again", business_connection_id="other")
        assert client.send_message.call_args_list[0] == call(
            1000, "pong", reply_to_message_id=1, business_connection_id="bc1",
        )
        assert client.send_message.call_args_list[1] == call(1000, "again", business_connection_id="other")

    @pytest.mark.asyncio
    async def test_forward_and_pin(self) -> None:
        client = MagicMock()
        update = decode_update({"update_id": 1, "message": _message(text="ping")}, client)
        await update.forward_to(2000)
        await update.pin_this_message(disable_notification=True)
        client.forward_message.assert_called_once_with(2000, 1000, 1)
        client.pin_chat_message.assert_called_once_with(1000, 1, True)

    @pytest.mark.asyncio
    async def test_callback_alert(self) -> None:
        client = MagicMock()
        raw = {"update_id": 1, "callback_query": {"id": "cb1", "from": USER, "chat_instance": "ci"}}
        await decode_update(raw, client).alert("No")
        client.answer_callback_query.assert_called_once_with("cb1", "No", show_alert=True)

    @pytest.mark.asyncio
    async def test_unbound_update(self) -> None:
        update = decode_update({"update_id": 1, "message": _message(text="x")})
        with pytest.raises(RuntimeError):
            await update.delete_this_message()
