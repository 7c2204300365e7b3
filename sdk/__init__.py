"""Typed Telegram Bot API binding — transport, envelope codec, client and updates.

Usage::

    from sdk import Client, InputFile, RequestError
    from sdk.updates import decode_update

    client = Client.from_env()
    client.send_photo(42, InputFile.from_path("cat.jpg"), caption="cat")
"""

from sdk.client import Client
from sdk.exceptions import (
    DecodeError,
    MethodCallError,
    NetworkError,
    OutOfServiceError,
    ParseError,
    PollingSetupError,
    PollingTimeoutError,
    RequestError,
)
from sdk.input_file import (
    InputFile,
    InputMedia,
    InputMediaAnimation,
    InputMediaAudio,
    InputMediaDocument,
    InputMediaPhoto,
    InputMediaVideo,
)
from sdk.transport import DEFAULT_BASE_URL, Transport
from sdk.updates import UPDATE_KINDS, Update, decode_update

__all__ = [
    "Client",
    "Transport",
    "DEFAULT_BASE_URL",
    # Files
    "InputFile",
    "InputMedia",
    "InputMediaAnimation",
    "InputMediaAudio",
    "InputMediaDocument",
    "InputMediaPhoto",
    "InputMediaVideo",
    # Updates
    "Update",
    "UPDATE_KINDS",
    "decode_update",
    # Errors
    "MethodCallError",
    "NetworkError",
    "OutOfServiceError",
    "ParseError",
    "RequestError",
    "DecodeError",
    "PollingSetupError",
    "PollingTimeoutError",
]
