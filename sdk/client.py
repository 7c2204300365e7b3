"""Client — the method-call primitive and a set of typed method builders.

Every outbound operation funnels through :meth:`Client.call`: the keyword
fields are encoded by :mod:`sdk.envelope` (JSON, or multipart as soon as a
file is uploaded), sent by :class:`~sdk.transport.Transport`, and the response
envelope is decoded into the requested result type.  Failures surface as the
:class:`~sdk.exceptions.MethodCallError` taxonomy and nothing else.

The builders below are thin data assemblers: they name the method, collect
the arguments (``None`` means "not set" and is omitted) and pick the result
type.  HTTP calls use the ``requests`` library; :meth:`Client.acall` offloads
a call via :func:`asyncio.to_thread` for use inside coroutines.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any, Dict, List, Optional, Sequence, Union

from core.logger import TgwireLogger
from sdk.envelope import build_payload, decode_response
from sdk.exceptions import OutOfServiceError, ParseError, RequestError
from sdk.input_file import InputFile, InputMedia
from sdk.models import (
    BotCommand,
    File,
    InlineKeyboardMarkup,
    Message,
    MessageEntity,
    MessageId,
    User,
    WebhookInfo,
)
from sdk.transport import DEFAULT_BASE_URL, Transport

_sdk_logger = TgwireLogger.get_logger()

ChatId = Union[int, str]
ReplyMarkup = Union[InlineKeyboardMarkup, Dict[str, Any]]


class Client:
    """Explicitly constructed Bot API client.

    The client owns the bot token and the transport; nothing is stored in
    module-level state, so independent clients (e.g. with fake transports in
    tests) can coexist.
    """

    _DEFAULT_TIMEOUT: float = 10

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = _DEFAULT_TIMEOUT,
        transport: Optional[Transport] = None,
        proxies: Optional[Dict[str, str]] = None,
    ) -> None:
        """Create a new client.

        Args:
            token: The bot token.  It is never logged.
            base_url: Bot API server URI (self-hosted servers, proxies).
            timeout: Default transport timeout in seconds.
            transport: Custom transport; built from *base_url* otherwise.
            proxies: ``requests`` proxy mapping for the default transport.
        """
        if not token:
            raise ValueError("A bot token is required")
        self._token = token
        self._timeout = timeout
        self._transport = transport or Transport(base_url, proxies=proxies)

    @classmethod
    def from_env(cls, var: str = "BOT_TOKEN", **kwargs: Any) -> "Client":
        """Build a client from the token in the *var* environment variable.

        Raises:
            EnvironmentError: If the variable is not set or is empty.
        """
        token = os.environ.get(var)
        if not token:
            raise EnvironmentError(f"{var} environment variable is not set or is empty.")
        return cls(token, **kwargs)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(base_url={self._transport.base_url!r})"

    @property
    def transport(self) -> Transport:
        return self._transport

    # ------------------------------------------------------------------
    #  Method-call primitive
    # ------------------------------------------------------------------

    def call(
        self,
        method: str,
        fields: Optional[Dict[str, Any]] = None,
        result_type: Any = Any,
        timeout: Optional[float] = None,
    ) -> Any:
        """Call *method* with *fields* and return its decoded result.

        Raises:
            NetworkError: The request did not complete.
            OutOfServiceError: The Bot API answered with a non-JSON page.
            ParseError: The response did not match *result_type*.
            RequestError: The Bot API rejected the call.
        """
        payload = build_payload(fields)
        body, boundary = payload.encode()
        _sdk_logger.debug(
            "Calling Bot API method",
            extra={"api_endpoint": method, "multipart": boundary is not None, "body_size": len(body)},
        )
        raw = self._transport.send(
            self._token, method, body, boundary,
            timeout=timeout if timeout is not None else self._timeout,
        )
        try:
            return decode_response(raw, result_type)
        except ParseError as exc:
            # A parse failure means the local models lag behind the Bot API.
            _sdk_logger.error(
                "Bot API response could not be parsed",
                extra={"api_endpoint": method, "error": str(exc.error), "response_preview": raw[:200]},
            )
            raise
        except OutOfServiceError:
            _sdk_logger.warning("Bot API is out of service", extra={"api_endpoint": method})
            raise
        except RequestError as exc:
            _sdk_logger.info(
                "Bot API rejected the call",
                extra={
                    "api_endpoint": method,
                    "error_code": exc.error_code,
                    "description": exc.description,
                    "retry_after": exc.retry_after,
                },
            )
            raise

    async def acall(
        self,
        method: str,
        fields: Optional[Dict[str, Any]] = None,
        result_type: Any = Any,
        timeout: Optional[float] = None,
    ) -> Any:
        """Run :meth:`call` in a worker thread to keep the event loop free."""
        return await asyncio.to_thread(self.call, method, fields, result_type, timeout)

    # ------------------------------------------------------------------
    #  Getting updates
    # ------------------------------------------------------------------

    def get_updates(
        self,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
        timeout: Optional[int] = None,
        allowed_updates: Optional[Sequence[str]] = None,
        request_timeout: Optional[float] = None,
    ) -> List[Any]:
        """Long-poll for updates; returns raw update objects.

        *timeout* is the server-side long-poll duration; *request_timeout*
        bounds the HTTP request itself.  Items are returned undecoded (not
        even checked to be objects) so one malformed update cannot fail the
        whole batch; :func:`sdk.updates.decode_update` reports it instead.
        """
        payload: Dict[str, Any] = {
            "offset": offset,
            "limit": limit,
            "timeout": timeout,
            "allowed_updates": list(allowed_updates) if allowed_updates is not None else None,
        }
        return self.call("getUpdates", payload, List[Any], timeout=request_timeout)

    def delete_webhook(self, drop_pending_updates: Optional[bool] = None) -> bool:
        """Remove webhook integration so that ``getUpdates`` may be used."""
        return self.call("deleteWebhook", {"drop_pending_updates": drop_pending_updates}, bool)

    def get_webhook_info(self) -> WebhookInfo:
        return self.call("getWebhookInfo", None, WebhookInfo)

    # ------------------------------------------------------------------
    #  Bot
    # ------------------------------------------------------------------

    def get_me(self) -> User:
        """A simple method for testing the bot's auth token."""
        return self.call("getMe", None, User)

    def log_out(self) -> bool:
        """Log out from the cloud Bot API server before moving to a local one."""
        return self.call("logOut", None, bool)

    def close(self) -> bool:
        """Close the bot instance before moving it between local servers."""
        return self.call("close", None, bool)

    def set_my_commands(self, commands: Sequence[BotCommand], language_code: Optional[str] = None) -> bool:
        return self.call(
            "setMyCommands",
            {"commands": list(commands), "language_code": language_code},
            bool,
        )

    def get_my_commands(self, language_code: Optional[str] = None) -> List[BotCommand]:
        return self.call("getMyCommands", {"language_code": language_code}, List[BotCommand])

    # ------------------------------------------------------------------
    #  Sending
    # ------------------------------------------------------------------

    def send_message(
        self,
        chat_id: ChatId,
        text: str,
        parse_mode: Optional[str] = None,
        entities: Optional[List[MessageEntity]] = None,
        disable_notification: Optional[bool] = None,
        reply_to_message_id: Optional[int] = None,
        reply_markup: Optional[ReplyMarkup] = None,
        business_connection_id: Optional[str] = None,
    ) -> Message:
        """Send a text message, on behalf of a business account when
        *business_connection_id* is given."""
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": parse_mode,
            "entities": entities,
            "disable_notification": disable_notification,
            "reply_to_message_id": reply_to_message_id,
            "reply_markup": reply_markup,
            "business_connection_id": business_connection_id,
        }
        return self.call("sendMessage", payload, Message)

    def send_photo(
        self,
        chat_id: ChatId,
        photo: Union[InputFile, str],
        caption: Optional[str] = None,
        parse_mode: Optional[str] = None,
        disable_notification: Optional[bool] = None,
        reply_to_message_id: Optional[int] = None,
        reply_markup: Optional[ReplyMarkup] = None,
    ) -> Message:
        """Send a photo by upload, URL or file id."""
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "photo": photo,
            "caption": caption,
            "parse_mode": parse_mode,
            "disable_notification": disable_notification,
            "reply_to_message_id": reply_to_message_id,
            "reply_markup": reply_markup,
        }
        return self.call("sendPhoto", payload, Message)

    def send_document(
        self,
        chat_id: ChatId,
        document: Union[InputFile, str],
        thumbnail: Optional[InputFile] = None,
        caption: Optional[str] = None,
        parse_mode: Optional[str] = None,
        disable_content_type_detection: Optional[bool] = None,
        disable_notification: Optional[bool] = None,
        reply_to_message_id: Optional[int] = None,
        reply_markup: Optional[ReplyMarkup] = None,
    ) -> Message:
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "document": document,
            "thumbnail": thumbnail,
            "caption": caption,
            "parse_mode": parse_mode,
            "disable_content_type_detection": disable_content_type_detection,
            "disable_notification": disable_notification,
            "reply_to_message_id": reply_to_message_id,
            "reply_markup": reply_markup,
        }
        return self.call("sendDocument", payload, Message)

    def send_media_group(
        self,
        chat_id: ChatId,
        media: Sequence[InputMedia],
        disable_notification: Optional[bool] = None,
        reply_to_message_id: Optional[int] = None,
    ) -> List[Message]:
        """Send 2-10 photos, videos, documents or audios as an album."""
        if not 2 <= len(media) <= 10:
            raise ValueError("A media group must contain 2 to 10 items")
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "media": list(media),
            "disable_notification": disable_notification,
            "reply_to_message_id": reply_to_message_id,
        }
        return self.call("sendMediaGroup", payload, List[Message])

    def forward_message(
        self,
        chat_id: ChatId,
        from_chat_id: ChatId,
        message_id: int,
        disable_notification: Optional[bool] = None,
    ) -> Message:
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "from_chat_id": from_chat_id,
            "message_id": message_id,
            "disable_notification": disable_notification,
        }
        return self.call("forwardMessage", payload, Message)

    def copy_message(
        self,
        chat_id: ChatId,
        from_chat_id: ChatId,
        message_id: int,
        caption: Optional[str] = None,
        parse_mode: Optional[str] = None,
        disable_notification: Optional[bool] = None,
        reply_to_message_id: Optional[int] = None,
        reply_markup: Optional[ReplyMarkup] = None,
    ) -> MessageId:
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "from_chat_id": from_chat_id,
            "message_id": message_id,
            "caption": caption,
            "parse_mode": parse_mode,
            "disable_notification": disable_notification,
            "reply_to_message_id": reply_to_message_id,
            "reply_markup": reply_markup,
        }
        return self.call("copyMessage", payload, MessageId)

    # ------------------------------------------------------------------
    #  Editing and managing messages
    # ------------------------------------------------------------------

    def edit_message_text(
        self,
        text: str,
        chat_id: Optional[ChatId] = None,
        message_id: Optional[int] = None,
        inline_message_id: Optional[str] = None,
        parse_mode: Optional[str] = None,
        reply_markup: Optional[ReplyMarkup] = None,
    ) -> Union[Message, bool]:
        """Edit a text message; inline messages return ``True`` instead."""
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "inline_message_id": inline_message_id,
            "text": text,
            "parse_mode": parse_mode,
            "reply_markup": reply_markup,
        }
        return self.call("editMessageText", payload, Union[Message, bool])

    def edit_message_media(
        self,
        media: InputMedia,
        chat_id: Optional[ChatId] = None,
        message_id: Optional[int] = None,
        inline_message_id: Optional[str] = None,
        reply_markup: Optional[ReplyMarkup] = None,
    ) -> Union[Message, bool]:
        """Replace the media of a message.

        An uploaded file inside *media* is sent as a separate part and
        referenced from the ``media`` JSON field as ``attach://<type>``.
        """
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "inline_message_id": inline_message_id,
            "media": media,
            "reply_markup": reply_markup,
        }
        return self.call("editMessageMedia", payload, Union[Message, bool])

    def delete_message(self, chat_id: ChatId, message_id: int) -> bool:
        return self.call("deleteMessage", {"chat_id": chat_id, "message_id": message_id}, bool)

    def pin_chat_message(
        self, chat_id: ChatId, message_id: int, disable_notification: Optional[bool] = None,
    ) -> bool:
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "disable_notification": disable_notification,
        }
        return self.call("pinChatMessage", payload, bool)

    def unpin_chat_message(self, chat_id: ChatId, message_id: Optional[int] = None) -> bool:
        return self.call("unpinChatMessage", {"chat_id": chat_id, "message_id": message_id}, bool)

    # ------------------------------------------------------------------
    #  Queries
    # ------------------------------------------------------------------

    def answer_callback_query(
        self,
        callback_query_id: str,
        text: Optional[str] = None,
        show_alert: Optional[bool] = None,
        url: Optional[str] = None,
        cache_time: Optional[int] = None,
    ) -> bool:
        """Acknowledge a callback query so the spinner disappears for the user."""
        payload: Dict[str, Any] = {
            "callback_query_id": callback_query_id,
            "text": text,
            "show_alert": show_alert,
            "url": url,
            "cache_time": cache_time,
        }
        return self.call("answerCallbackQuery", payload, bool)

    def answer_inline_query(
        self,
        inline_query_id: str,
        results: Sequence[Dict[str, Any]],
        cache_time: Optional[int] = None,
        is_personal: Optional[bool] = None,
        next_offset: Optional[str] = None,
    ) -> bool:
        if len(results) > 50:
            raise ValueError("No more than 50 results are allowed per inline query")
        payload: Dict[str, Any] = {
            "inline_query_id": inline_query_id,
            "results": list(results),
            "cache_time": cache_time,
            "is_personal": is_personal,
            "next_offset": next_offset,
        }
        return self.call("answerInlineQuery", payload, bool)

    # ------------------------------------------------------------------
    #  Files
    # ------------------------------------------------------------------

    def get_file(self, file_id: str) -> File:
        """Resolve a ``file_id`` to a downloadable :class:`File`."""
        return self.call("getFile", {"file_id": file_id}, File)

    def file_url(self, file_path: str) -> str:
        """Build the download URL for ``File.file_path`` (contains the token)."""
        return self._transport.file_url(self._token, file_path)

    def download_file(self, file_path: str, timeout: Optional[float] = None) -> bytes:
        """Download the raw bytes behind ``File.file_path``.

        Raises:
            NetworkError: On transport failures or a non-2xx status.
        """
        return self._transport.download(
            self._token, file_path, timeout=timeout if timeout is not None else self._timeout,
        )


__all__ = ["Client", "ChatId"]
