"""Capability mixins for update variants.

Instead of one deep hierarchy, each update variant declares the capabilities
it supports by mixing in the classes below, and handlers can test for them
with ``isinstance(update, Pinnable)``.  Every capability method is a
coroutine: the blocking client call is offloaded with
:func:`asyncio.to_thread` so handlers never stall the event loop.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Optional, Union

if TYPE_CHECKING:
    from sdk.client import Client
    from sdk.models import Message, MessageId


class BoundToClient:
    """Gives a variant access to the client that received it."""

    client: Optional["Client"]

    def bot(self) -> "Client":
        """Return the bound client.

        Raises:
            RuntimeError: If the update was decoded without a client.
        """
        if self.client is None:
            raise RuntimeError("This update is not bound to a client")
        return self.client


class ChatMethods(BoundToClient):
    """Methods that act in the chat the update came from.

    Messages sent from a business message go through the same business
    connection unless the caller passes ``business_connection_id`` itself.
    """

    chat_id: int
    message_id: int
    business_connection_id: Optional[str] = None

    def _via_connection(self, kwargs: dict) -> dict:
        if self.business_connection_id is not None:
            kwargs.setdefault("business_connection_id", self.business_connection_id)
        return kwargs

    async def send_message(self, text: str, **kwargs: Any) -> "Message":
        """Send *text* to this chat."""
        return await asyncio.to_thread(
            self.bot().send_message, self.chat_id, text, **self._via_connection(kwargs),
        )

    async def send_message_in_reply(self, text: str, **kwargs: Any) -> "Message":
        """Send *text* to this chat as a reply to this message."""
        return await asyncio.to_thread(
            self.bot().send_message,
            self.chat_id,
            text,
            reply_to_message_id=self.message_id,
            **self._via_connection(kwargs),
        )


class Forwardable(BoundToClient):
    """Messages that can be forwarded to another chat."""

    chat_id: int
    message_id: int

    async def forward_to(self, chat_id: Union[int, str], **kwargs: Any) -> "Message":
        return await asyncio.to_thread(
            self.bot().forward_message, chat_id, self.chat_id, self.message_id, **kwargs,
        )


class Copyable(BoundToClient):
    """Messages that can be copied without a link to the original."""

    chat_id: int
    message_id: int

    async def copy_to(self, chat_id: Union[int, str], **kwargs: Any) -> "MessageId":
        return await asyncio.to_thread(
            self.bot().copy_message, chat_id, self.chat_id, self.message_id, **kwargs,
        )


class Pinnable(BoundToClient):
    """Messages that can be pinned in their chat."""

    chat_id: int
    message_id: int

    async def pin_this_message(self, disable_notification: Optional[bool] = None) -> bool:
        return await asyncio.to_thread(
            self.bot().pin_chat_message, self.chat_id, self.message_id, disable_notification,
        )

    async def unpin_this_message(self) -> bool:
        return await asyncio.to_thread(self.bot().unpin_chat_message, self.chat_id, self.message_id)


class Deletable(BoundToClient):
    """Messages the bot can delete."""

    chat_id: int
    message_id: int

    async def delete_this_message(self) -> bool:
        return await asyncio.to_thread(self.bot().delete_message, self.chat_id, self.message_id)


class Callback(BoundToClient):
    """Callback queries, which must be answered to stop the client's spinner."""

    callback_query_id: str

    async def notify(self, text: Optional[str] = None) -> bool:
        """Answer with an optional toast notification."""
        return await asyncio.to_thread(self.bot().answer_callback_query, self.callback_query_id, text)

    async def alert(self, text: str) -> bool:
        """Answer with a modal alert."""
        return await asyncio.to_thread(
            self.bot().answer_callback_query, self.callback_query_id, text, show_alert=True,
        )
