"""Exception hierarchy for the tgwire Bot API binding.

Every outbound call either returns its typed result or raises one of the
:class:`MethodCallError` subclasses below.  Polling adds two more error kinds
(:class:`PollingTimeoutError` for a tick that exceeded its wall-clock budget
and :class:`PollingSetupError` for the fatal start-up phase), and the update
decoder reports malformed inbound updates with :class:`DecodeError`.
"""

from typing import Any, Optional


class MethodCallError(Exception):
    """Base class for every failure of a Bot API method call."""


class NetworkError(MethodCallError):
    """The request never produced a response (connection, TLS, timeout).

    Attributes:
        cause: The underlying transport exception.
    """

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"A method call failed because of a network error: {cause}")


class OutOfServiceError(MethodCallError):
    """The server answered with something that is not a JSON envelope.

    This is what a maintenance HTML page looks like, so it usually means the
    Bot API is down rather than that the response schema changed.
    """

    def __init__(self, response: bytes = b"") -> None:
        self.response = response
        super().__init__("A method call failed because the Bot API is out of service.")


class ParseError(MethodCallError):
    """The response could not be parsed into the expected shape.

    Attributes:
        response: The raw response bytes.
        error: The exception raised while parsing or validating.
    """

    def __init__(self, response: bytes, error: BaseException) -> None:
        self.response = response
        self.error = error
        super().__init__(
            "A method call failed because the response could not be parsed.\n"
            f"The response was: {response[:512]!r}\n"
            f"The error was: {error}"
        )


class RequestError(MethodCallError):
    """The Bot API rejected the call with ``{"ok": false, ...}``.

    Attributes:
        description: Human-readable description of the error.
        error_code: Numeric error code (mirrors the HTTP status).
        migrate_to_chat_id: The group moved to a supergroup with this id.
        retry_after: Flood control; seconds to wait before the next request.
    """

    def __init__(
        self,
        description: str,
        error_code: int,
        migrate_to_chat_id: Optional[int] = None,
        retry_after: Optional[int] = None,
    ) -> None:
        self.description = description
        self.error_code = error_code
        self.migrate_to_chat_id = migrate_to_chat_id
        self.retry_after = retry_after
        super().__init__(f"API error {error_code}: {description}")


class DecodeError(Exception):
    """One inbound update could not be mapped to an update variant.

    Attributes:
        raw: The offending update, re-serialised to bytes.
        reason: Short machine-friendly reason (``no-known-payload``, ``ambiguous-payload``,
            ``invalid-payload``, ...).
        update_id: The update id when it could be read, else ``None``.
    """

    def __init__(self, raw: bytes, reason: str, update_id: Optional[int] = None, detail: Any = None) -> None:
        self.raw = raw
        self.reason = reason
        self.update_id = update_id
        self.detail = detail
        message = f"Failed to decode update {update_id}: {reason}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class PollingTimeoutError(Exception):
    """A ``getUpdates`` request exceeded the client-side wall-clock timeout."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"getUpdates did not complete within {timeout:g} s")


class PollingSetupError(Exception):
    """The one-time polling set-up failed; the engine cannot start.

    Attributes:
        stage: ``"delete_webhook"`` or ``"set_my_commands"``.
        timed_out: Whether the stage exceeded the request timeout.
        cause: The underlying :class:`MethodCallError` or timeout error.
    """

    def __init__(self, stage: str, cause: BaseException, timed_out: bool = False) -> None:
        self.stage = stage
        self.cause = cause
        self.timed_out = timed_out
        what = "timed out" if timed_out else "failed"
        super().__init__(f"Polling set-up {what} at {stage}: {cause}")
