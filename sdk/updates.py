"""Update decoder — raw ``getUpdates`` items to typed, closed variants.

A raw update is ``{"update_id": int, <exactly one payload field>}``.  The
payload fields the binding understands are listed once, in
:data:`UPDATE_FIELDS`, which maps each field to its pydantic model, the
variant class that carries it and the variant ``kind`` used for handler
routing.  :func:`decode_update` is the only consumer of that table.

Message-like payloads are classified further by their content, so a handler
can subscribe to ``"text"`` or ``"photo"`` directly; edited messages get an
``edited_`` prefix.  A message whose content is not mapped becomes the
``"unhandled"`` kind rather than an error.

Anything that cannot be decoded (no payload field the table knows, several
payload fields, a payload failing validation) raises
:class:`~sdk.exceptions.DecodeError`.  The polling engine logs and skips such
updates; it never stops because the platform added an update kind.
"""

from __future__ import annotations

import dataclasses
import json
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Dict, NamedTuple, Optional, Tuple, Type, Union

from pydantic import BaseModel, ValidationError

from sdk.capabilities import Callback, ChatMethods, Copyable, Deletable, Forwardable, Pinnable
from sdk.exceptions import DecodeError
from sdk.models import (
    BusinessConnection,
    BusinessMessagesDeleted,
    CallbackQuery,
    ChatBoostRemoved,
    ChatBoostUpdated,
    ChatJoinRequest,
    ChatMemberUpdated,
    ChosenInlineResult,
    InlineQuery,
    Message,
    MessageReactionCountUpdated,
    MessageReactionUpdated,
    PaidMediaPurchased,
    Poll,
    PollAnswer,
    PreCheckoutQuery,
    ShippingQuery,
)

if TYPE_CHECKING:
    from sdk.client import Client

UNHANDLED = "unhandled"

# Message content field -> kind.  Order matters: an animation message also
# carries ``document`` and a venue message also carries ``location``.
MESSAGE_CONTENT_KINDS: Tuple[Tuple[str, str], ...] = (
    ("text", "text"),
    ("animation", "animation"),
    ("audio", "audio"),
    ("document", "document"),
    ("photo", "photo"),
    ("sticker", "sticker"),
    ("video", "video"),
    ("video_note", "video_note"),
    ("voice", "voice"),
    ("contact", "contact"),
    ("dice", "dice"),
    ("game", "game"),
    ("poll", "poll"),
    ("venue", "venue"),
    ("location", "location"),
    ("new_chat_members", "new_members"),
    ("left_chat_member", "left_member"),
    ("new_chat_title", "new_chat_title"),
    ("new_chat_photo", "new_chat_photo"),
    ("delete_chat_photo", "deleted_chat_photo"),
    ("group_chat_created", "created_group"),
    ("supergroup_chat_created", "created_group"),
    ("channel_chat_created", "created_group"),
    ("migrate_to_chat_id", "migration"),
    ("migrate_from_chat_id", "migration"),
    ("pinned_message", "pinned_message"),
    ("invoice", "invoice"),
    ("successful_payment", "payment"),
    ("connected_website", "connected_website"),
    ("passport_data", "passport"),
    ("proximity_alert_triggered", "proximity_alert"),
)


def _command_entity(message: Message):
    if not message.text or not message.entities:
        return None
    for entity in message.entities:
        if entity.type == "bot_command" and entity.offset == 0:
            return entity
    return None


def message_kind(message: Message) -> str:
    """Classify a message by its content (``text``, ``command``, ``photo``, ...)."""
    for field, kind in MESSAGE_CONTENT_KINDS:
        value = getattr(message, field)
        if value is None or value is False or value == []:
            continue
        if kind == "text" and _command_entity(message) is not None:
            return "command"
        return kind
    return UNHANDLED


def edited_message_kind(message: Message) -> str:
    kind = message_kind(message)
    return kind if kind == UNHANDLED else f"edited_{kind}"


def callback_kind(query: CallbackQuery) -> str:
    return "game_callback" if query.game_short_name is not None else "data_callback"


# ── Variants ─────────────────────────────────────────────────────────────────


@dataclasses.dataclass(frozen=True, kw_only=True)
class Update:
    """Base of every update variant.

    Attributes:
        update_id: The platform's update identifier.
        kind: Routing tag handlers subscribe to.
        source: The raw payload field the update was decoded from.
        client: The client that received the update, if any.
    """

    payload_field: ClassVar[str] = ""

    update_id: int
    kind: str
    source: str
    client: Optional["Client"] = dataclasses.field(default=None, repr=False, compare=False)

    @property
    def payload(self) -> BaseModel:
        """The decoded payload model."""
        return getattr(self, self.payload_field)


class _MessageAccess:
    message: Message

    @property
    def chat_id(self) -> int:
        return self.message.chat.id

    @property
    def message_id(self) -> int:
        return self.message.message_id

    @property
    def business_connection_id(self) -> Optional[str]:
        return self.message.business_connection_id

    @property
    def text(self) -> Optional[str]:
        return self.message.text if self.message.text is not None else self.message.caption

    @property
    def command(self) -> Optional[str]:
        """The command name without ``/`` and ``@botname``, for command messages."""
        entity = _command_entity(self.message)
        if entity is None:
            return None
        raw = self.message.text[1:entity.length]
        return raw.split("@", 1)[0]

    @property
    def command_args(self) -> str:
        """Text following the command, stripped; empty when absent."""
        entity = _command_entity(self.message)
        if entity is None:
            return ""
        return self.message.text[entity.length:].strip()


@dataclasses.dataclass(frozen=True, kw_only=True)
class MessageUpdate(_MessageAccess, ChatMethods, Forwardable, Copyable, Pinnable, Deletable, Update):
    """A new message, channel post or business message."""

    payload_field: ClassVar[str] = "message"

    message: Message


@dataclasses.dataclass(frozen=True, kw_only=True)
class EditedMessageUpdate(_MessageAccess, ChatMethods, Pinnable, Deletable, Update):
    """An edited message, channel post or business message."""

    payload_field: ClassVar[str] = "message"

    message: Message


@dataclasses.dataclass(frozen=True, kw_only=True)
class CallbackQueryUpdate(Callback, Update):
    payload_field: ClassVar[str] = "callback_query"

    callback_query: CallbackQuery

    @property
    def callback_query_id(self) -> str:
        return self.callback_query.id


@dataclasses.dataclass(frozen=True, kw_only=True)
class InlineQueryUpdate(Update):
    payload_field: ClassVar[str] = "inline_query"

    inline_query: InlineQuery


@dataclasses.dataclass(frozen=True, kw_only=True)
class ChosenInlineResultUpdate(Update):
    payload_field: ClassVar[str] = "chosen_inline_result"

    chosen_inline_result: ChosenInlineResult


@dataclasses.dataclass(frozen=True, kw_only=True)
class ShippingQueryUpdate(Update):
    payload_field: ClassVar[str] = "shipping_query"

    shipping_query: ShippingQuery


@dataclasses.dataclass(frozen=True, kw_only=True)
class PreCheckoutQueryUpdate(Update):
    payload_field: ClassVar[str] = "pre_checkout_query"

    pre_checkout_query: PreCheckoutQuery


@dataclasses.dataclass(frozen=True, kw_only=True)
class PollUpdate(Update):
    payload_field: ClassVar[str] = "poll"

    poll: Poll


@dataclasses.dataclass(frozen=True, kw_only=True)
class PollAnswerUpdate(Update):
    payload_field: ClassVar[str] = "poll_answer"

    poll_answer: PollAnswer


@dataclasses.dataclass(frozen=True, kw_only=True)
class ChatMemberUpdate(Update):
    """The bot's own membership (``my_chat_member``) or another member's changed."""

    payload_field: ClassVar[str] = "chat_member"

    chat_member: ChatMemberUpdated


@dataclasses.dataclass(frozen=True, kw_only=True)
class ChatJoinRequestUpdate(Update):
    payload_field: ClassVar[str] = "chat_join_request"

    chat_join_request: ChatJoinRequest


@dataclasses.dataclass(frozen=True, kw_only=True)
class MessageReactionUpdate(Update):
    payload_field: ClassVar[str] = "message_reaction"

    message_reaction: MessageReactionUpdated


@dataclasses.dataclass(frozen=True, kw_only=True)
class MessageReactionCountUpdate(Update):
    payload_field: ClassVar[str] = "message_reaction_count"

    message_reaction_count: MessageReactionCountUpdated


@dataclasses.dataclass(frozen=True, kw_only=True)
class ChatBoostUpdate(Update):
    payload_field: ClassVar[str] = "chat_boost"

    chat_boost: ChatBoostUpdated


@dataclasses.dataclass(frozen=True, kw_only=True)
class RemovedChatBoostUpdate(Update):
    payload_field: ClassVar[str] = "removed_chat_boost"

    removed_chat_boost: ChatBoostRemoved


@dataclasses.dataclass(frozen=True, kw_only=True)
class BusinessConnectionUpdate(Update):
    payload_field: ClassVar[str] = "business_connection"

    business_connection: BusinessConnection


@dataclasses.dataclass(frozen=True, kw_only=True)
class DeletedBusinessMessagesUpdate(Update):
    payload_field: ClassVar[str] = "deleted_business_messages"

    deleted_business_messages: BusinessMessagesDeleted


@dataclasses.dataclass(frozen=True, kw_only=True)
class PurchasedPaidMediaUpdate(Update):
    payload_field: ClassVar[str] = "purchased_paid_media"

    purchased_paid_media: PaidMediaPurchased


# ── Routing table ────────────────────────────────────────────────────────────


class Route(NamedTuple):
    """How one raw payload field becomes a variant."""

    model: Type[BaseModel]
    variant: Type[Update]
    kind: Union[str, Callable[[Any], str]]


UPDATE_FIELDS: Dict[str, Route] = {
    "message": Route(Message, MessageUpdate, message_kind),
    "edited_message": Route(Message, EditedMessageUpdate, edited_message_kind),
    "channel_post": Route(Message, MessageUpdate, message_kind),
    "edited_channel_post": Route(Message, EditedMessageUpdate, edited_message_kind),
    "business_connection": Route(BusinessConnection, BusinessConnectionUpdate, "business_connection"),
    "business_message": Route(Message, MessageUpdate, message_kind),
    "edited_business_message": Route(Message, EditedMessageUpdate, edited_message_kind),
    "deleted_business_messages": Route(
        BusinessMessagesDeleted, DeletedBusinessMessagesUpdate, "deleted_business_messages",
    ),
    "message_reaction": Route(MessageReactionUpdated, MessageReactionUpdate, "message_reaction"),
    "message_reaction_count": Route(
        MessageReactionCountUpdated, MessageReactionCountUpdate, "message_reaction_count",
    ),
    "inline_query": Route(InlineQuery, InlineQueryUpdate, "inline"),
    "chosen_inline_result": Route(ChosenInlineResult, ChosenInlineResultUpdate, "chosen_inline"),
    "callback_query": Route(CallbackQuery, CallbackQueryUpdate, callback_kind),
    "shipping_query": Route(ShippingQuery, ShippingQueryUpdate, "shipping"),
    "pre_checkout_query": Route(PreCheckoutQuery, PreCheckoutQueryUpdate, "pre_checkout"),
    "purchased_paid_media": Route(PaidMediaPurchased, PurchasedPaidMediaUpdate, "purchased_paid_media"),
    "poll": Route(Poll, PollUpdate, "updated_poll"),
    "poll_answer": Route(PollAnswer, PollAnswerUpdate, "poll_answer"),
    "my_chat_member": Route(ChatMemberUpdated, ChatMemberUpdate, "my_chat_member"),
    "chat_member": Route(ChatMemberUpdated, ChatMemberUpdate, "chat_member"),
    "chat_join_request": Route(ChatJoinRequest, ChatJoinRequestUpdate, "chat_join_request"),
    "chat_boost": Route(ChatBoostUpdated, ChatBoostUpdate, "chat_boost"),
    "removed_chat_boost": Route(ChatBoostRemoved, RemovedChatBoostUpdate, "removed_chat_boost"),
}


def _all_kinds() -> frozenset:
    kinds = {UNHANDLED}
    for _field, kind in MESSAGE_CONTENT_KINDS:
        kinds.add(kind)
        kinds.add(f"edited_{kind}")
    kinds.update({"command", "edited_command", "data_callback", "game_callback"})
    kinds.update(route.kind for route in UPDATE_FIELDS.values() if isinstance(route.kind, str))
    return frozenset(kinds)


#: Every ``kind`` :func:`decode_update` can produce.
UPDATE_KINDS: frozenset = _all_kinds()


def _raw_bytes(raw: Any) -> bytes:
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw)
    return json.dumps(raw, ensure_ascii=False, default=str).encode("utf-8")


def decode_update(raw: Any, client: Optional["Client"] = None) -> Update:
    """Decode one raw update into its variant.

    Args:
        raw: One item of the ``getUpdates`` result list.
        client: Bound to the variant so capability methods can make calls.

    Raises:
        DecodeError: The update has no readable ``update_id``, no payload field
            listed in :data:`UPDATE_FIELDS`, more than one such field, or a
            payload that fails validation.
    """
    if not isinstance(raw, dict):
        raise DecodeError(_raw_bytes(raw), "not-an-object")

    update_id = raw.get("update_id")
    if not isinstance(update_id, int) or isinstance(update_id, bool):
        raise DecodeError(_raw_bytes(raw), "missing-update-id")

    present = [field for field in UPDATE_FIELDS if raw.get(field) is not None]
    if not present:
        unknown = sorted(key for key in raw if key != "update_id")
        raise DecodeError(_raw_bytes(raw), "no-known-payload", update_id, detail=unknown)
    if len(present) > 1:
        raise DecodeError(_raw_bytes(raw), "ambiguous-payload", update_id, detail=present)

    field = present[0]
    route = UPDATE_FIELDS[field]
    try:
        payload = route.model.model_validate(raw[field])
    except ValidationError as exc:
        raise DecodeError(_raw_bytes(raw), "invalid-payload", update_id, detail=str(exc)) from exc

    kind = route.kind(payload) if callable(route.kind) else route.kind
    return route.variant(
        update_id=update_id,
        kind=kind,
        source=field,
        client=client,
        **{route.variant.payload_field: payload},
    )
