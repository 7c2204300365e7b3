"""Pydantic data models for the Bot API objects the binding transports.

This is not the full Bot API type catalogue: it covers every inbound update
payload and the objects returned by the methods on :class:`~sdk.client.Client`.
Unknown fields are ignored, so a field added by the platform never breaks
validation; only a missing required field or a wrong type does.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class TelegramObject(BaseModel):
    """Base for all wire models."""

    model_config = {"populate_by_name": True}


class ResponseParameters(TelegramObject):
    """Describes why a request was unsuccessful."""

    migrate_to_chat_id: Optional[int] = None
    retry_after: Optional[int] = None


class Error(TelegramObject):
    """The ``ok: false`` response envelope."""

    ok: bool = False
    error_code: int
    description: str
    parameters: Optional[ResponseParameters] = None


class User(TelegramObject):
    """This object represents a Telegram user or bot."""

    id: int
    is_bot: bool
    first_name: str
    last_name: Optional[str] = None
    username: Optional[str] = None
    language_code: Optional[str] = None
    can_join_groups: Optional[bool] = None
    can_read_all_group_messages: Optional[bool] = None
    supports_inline_queries: Optional[bool] = None


class Chat(TelegramObject):
    """This object represents a chat."""

    id: int
    type: str
    title: Optional[str] = None
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_forum: Optional[bool] = None


class MessageEntity(TelegramObject):
    """One special entity in a text message (hashtag, command, URL, ...)."""

    type: str
    offset: int
    length: int
    url: Optional[str] = None
    user: Optional[User] = None
    language: Optional[str] = None
    custom_emoji_id: Optional[str] = None


class PhotoSize(TelegramObject):
    file_id: str
    file_unique_id: str
    width: int
    height: int
    file_size: Optional[int] = None


class Animation(TelegramObject):
    file_id: str
    file_unique_id: str
    width: int
    height: int
    duration: int
    thumbnail: Optional[PhotoSize] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None


class Audio(TelegramObject):
    file_id: str
    file_unique_id: str
    duration: int
    performer: Optional[str] = None
    title: Optional[str] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None
    thumbnail: Optional[PhotoSize] = None


class Document(TelegramObject):
    file_id: str
    file_unique_id: str
    thumbnail: Optional[PhotoSize] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None


class Video(TelegramObject):
    file_id: str
    file_unique_id: str
    width: int
    height: int
    duration: int
    thumbnail: Optional[PhotoSize] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None


class VideoNote(TelegramObject):
    file_id: str
    file_unique_id: str
    length: int
    duration: int
    thumbnail: Optional[PhotoSize] = None
    file_size: Optional[int] = None


class Voice(TelegramObject):
    file_id: str
    file_unique_id: str
    duration: int
    mime_type: Optional[str] = None
    file_size: Optional[int] = None


class Sticker(TelegramObject):
    file_id: str
    file_unique_id: str
    type: str
    width: int
    height: int
    is_animated: bool
    is_video: bool
    emoji: Optional[str] = None
    set_name: Optional[str] = None
    file_size: Optional[int] = None


class Contact(TelegramObject):
    phone_number: str
    first_name: str
    last_name: Optional[str] = None
    user_id: Optional[int] = None
    vcard: Optional[str] = None


class Dice(TelegramObject):
    emoji: str
    value: int


class Game(TelegramObject):
    title: str
    description: str
    photo: List[PhotoSize]
    text: Optional[str] = None


class PollOption(TelegramObject):
    text: str
    voter_count: int


class Poll(TelegramObject):
    """A native poll, either inside a message or as a state update."""

    id: str
    question: str
    options: List[PollOption]
    total_voter_count: int
    is_closed: bool
    is_anonymous: bool
    type: str
    allows_multiple_answers: bool
    correct_option_id: Optional[int] = None
    explanation: Optional[str] = None
    open_period: Optional[int] = None
    close_date: Optional[int] = None


class PollAnswer(TelegramObject):
    """A user changed their answer in a non-anonymous poll."""

    poll_id: str
    option_ids: List[int]
    user: Optional[User] = None
    voter_chat: Optional[Chat] = None


class Location(TelegramObject):
    longitude: float
    latitude: float
    horizontal_accuracy: Optional[float] = None
    live_period: Optional[int] = None
    heading: Optional[int] = None
    proximity_alert_radius: Optional[int] = None


class Venue(TelegramObject):
    location: Location
    title: str
    address: str
    foursquare_id: Optional[str] = None
    google_place_id: Optional[str] = None


class ProximityAlertTriggered(TelegramObject):
    traveler: User
    watcher: User
    distance: int


class Invoice(TelegramObject):
    title: str
    description: str
    start_parameter: str
    currency: str
    total_amount: int


class ShippingAddress(TelegramObject):
    country_code: str
    state: str
    city: str
    street_line1: str
    street_line2: str
    post_code: str


class OrderInfo(TelegramObject):
    name: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    shipping_address: Optional[ShippingAddress] = None


class SuccessfulPayment(TelegramObject):
    currency: str
    total_amount: int
    invoice_payload: str
    telegram_payment_charge_id: str
    provider_payment_charge_id: str
    shipping_option_id: Optional[str] = None
    order_info: Optional[OrderInfo] = None


class PassportData(TelegramObject):
    """Telegram Passport data; elements are kept as raw dicts."""

    data: List[Dict[str, Any]]
    credentials: Dict[str, Any]


class InlineKeyboardButton(TelegramObject):
    text: str
    url: Optional[str] = None
    callback_data: Optional[str] = None
    switch_inline_query: Optional[str] = None
    switch_inline_query_current_chat: Optional[str] = None


class InlineKeyboardMarkup(TelegramObject):
    inline_keyboard: List[List[InlineKeyboardButton]]


class Message(TelegramObject):
    """This object represents a message."""

    message_id: int
    date: int
    chat: Chat
    message_thread_id: Optional[int] = None
    from_field: Optional[User] = Field(None, alias="from")
    sender_chat: Optional[Chat] = None
    business_connection_id: Optional[str] = None
    forward_origin: Optional[Dict[str, Any]] = None
    reply_to_message: Optional[Message] = None
    via_bot: Optional[User] = None
    edit_date: Optional[int] = None
    media_group_id: Optional[str] = None
    author_signature: Optional[str] = None
    text: Optional[str] = None
    entities: Optional[List[MessageEntity]] = None
    animation: Optional[Animation] = None
    audio: Optional[Audio] = None
    document: Optional[Document] = None
    photo: Optional[List[PhotoSize]] = None
    sticker: Optional[Sticker] = None
    video: Optional[Video] = None
    video_note: Optional[VideoNote] = None
    voice: Optional[Voice] = None
    caption: Optional[str] = None
    caption_entities: Optional[List[MessageEntity]] = None
    contact: Optional[Contact] = None
    dice: Optional[Dice] = None
    game: Optional[Game] = None
    poll: Optional[Poll] = None
    venue: Optional[Venue] = None
    location: Optional[Location] = None
    new_chat_members: Optional[List[User]] = None
    left_chat_member: Optional[User] = None
    new_chat_title: Optional[str] = None
    new_chat_photo: Optional[List[PhotoSize]] = None
    delete_chat_photo: Optional[bool] = None
    group_chat_created: Optional[bool] = None
    supergroup_chat_created: Optional[bool] = None
    channel_chat_created: Optional[bool] = None
    migrate_to_chat_id: Optional[int] = None
    migrate_from_chat_id: Optional[int] = None
    pinned_message: Optional[Message] = None
    invoice: Optional[Invoice] = None
    successful_payment: Optional[SuccessfulPayment] = None
    connected_website: Optional[str] = None
    passport_data: Optional[PassportData] = None
    proximity_alert_triggered: Optional[ProximityAlertTriggered] = None
    reply_markup: Optional[InlineKeyboardMarkup] = None


class MessageId(TelegramObject):
    """A unique message identifier (result of ``copyMessage``)."""

    message_id: int


class CallbackQuery(TelegramObject):
    """An incoming callback query from an inline keyboard button."""

    id: str
    from_field: User = Field(alias="from")
    chat_instance: str
    message: Optional[Message] = None
    inline_message_id: Optional[str] = None
    data: Optional[str] = None
    game_short_name: Optional[str] = None


class InlineQuery(TelegramObject):
    id: str
    from_field: User = Field(alias="from")
    query: str
    offset: str
    chat_type: Optional[str] = None
    location: Optional[Location] = None


class ChosenInlineResult(TelegramObject):
    result_id: str
    from_field: User = Field(alias="from")
    query: str
    location: Optional[Location] = None
    inline_message_id: Optional[str] = None


class ShippingQuery(TelegramObject):
    id: str
    from_field: User = Field(alias="from")
    invoice_payload: str
    shipping_address: ShippingAddress


class PreCheckoutQuery(TelegramObject):
    id: str
    from_field: User = Field(alias="from")
    currency: str
    total_amount: int
    invoice_payload: str
    shipping_option_id: Optional[str] = None
    order_info: Optional[OrderInfo] = None


class ChatMember(TelegramObject):
    """Status of a chat member; status-specific fields are kept as extras."""

    status: str
    user: User

    model_config = {"populate_by_name": True, "extra": "allow"}


class ChatInviteLink(TelegramObject):
    invite_link: str
    creator: User
    creates_join_request: bool
    is_primary: bool
    is_revoked: bool
    name: Optional[str] = None


class ChatMemberUpdated(TelegramObject):
    """Changes in the status of a chat member."""

    chat: Chat
    from_field: User = Field(alias="from")
    date: int
    old_chat_member: ChatMember
    new_chat_member: ChatMember
    invite_link: Optional[ChatInviteLink] = None
    via_chat_folder_invite_link: Optional[bool] = None


class ChatJoinRequest(TelegramObject):
    chat: Chat
    from_field: User = Field(alias="from")
    user_chat_id: int
    date: int
    bio: Optional[str] = None
    invite_link: Optional[ChatInviteLink] = None


class MessageReactionUpdated(TelegramObject):
    chat: Chat
    message_id: int
    date: int
    old_reaction: List[Dict[str, Any]]
    new_reaction: List[Dict[str, Any]]
    user: Optional[User] = None
    actor_chat: Optional[Chat] = None


class MessageReactionCountUpdated(TelegramObject):
    chat: Chat
    message_id: int
    date: int
    reactions: List[Dict[str, Any]]


class ChatBoost(TelegramObject):
    boost_id: str
    add_date: int
    expiration_date: int
    source: Dict[str, Any]


class ChatBoostUpdated(TelegramObject):
    chat: Chat
    boost: ChatBoost


class ChatBoostRemoved(TelegramObject):
    chat: Chat
    boost_id: str
    remove_date: int
    source: Dict[str, Any]


class BusinessConnection(TelegramObject):
    id: str
    user: User
    user_chat_id: int
    date: int
    is_enabled: bool
    can_reply: Optional[bool] = None


class BusinessMessagesDeleted(TelegramObject):
    business_connection_id: str
    chat: Chat
    message_ids: List[int]


class PaidMediaPurchased(TelegramObject):
    from_field: User = Field(alias="from")
    paid_media_payload: str


class BotCommand(TelegramObject):
    """A bot command shown in the client's command menu."""

    command: str
    description: str


class WebhookInfo(TelegramObject):
    """Contains information about the current status of a webhook."""

    url: str
    has_custom_certificate: bool
    pending_update_count: int
    ip_address: Optional[str] = None
    last_error_date: Optional[int] = None
    last_error_message: Optional[str] = None
    max_connections: Optional[int] = None
    allowed_updates: Optional[List[str]] = None


class File(TelegramObject):
    """A file ready to be downloaded via :meth:`sdk.client.Client.download_file`."""

    file_id: str
    file_unique_id: str
    file_size: Optional[int] = None
    file_path: Optional[str] = None
