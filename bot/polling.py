"""Long-polling engine.

Drives the ``getUpdates`` loop::

    SettingUp ──(deleteWebhook, setMyCommands)──► Polling ◄──┐
        │                                          │ tick    │ sleep
        ▼                                          ▼         │
    PollingSetupError                      fetch, advance offset,
                                           decode, dispatch ──┘

Set-up failures are fatal and surface as :class:`PollingSetupError`.  Once
polling, no per-tick failure ever leaves the loop: call errors and the
wall-clock timeout go to the error handler, undecodable updates are logged
and skipped, and handlers run as free tasks owned by the dispatcher.

The offset only ever moves forward and is advanced past the whole batch
*before* dispatching, so updates are acknowledged on the next fetch even
when one of their handlers fails.
"""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
from typing import Any, Awaitable, Callable, NoReturn, Optional, Sequence, Union

from bot.dispatcher import Dispatcher
from core.logger import TgwireLogger
from sdk.client import Client
from sdk.exceptions import (
    DecodeError,
    MethodCallError,
    PollingSetupError,
    PollingTimeoutError,
    RequestError,
)
from sdk.updates import decode_update

logger = TgwireLogger.get_logger()

DEFAULT_POLL_INTERVAL = 0.025
#: Added to the long-poll ``timeout`` to get the default request timeout.
REQUEST_TIMEOUT_MARGIN = 60

PollingError = Union[MethodCallError, PollingTimeoutError]
ErrorHandler = Callable[[PollingError], Union[Awaitable[Any], Any]]


def default_error_handler(error: PollingError) -> None:
    """Log a per-tick polling error."""
    if isinstance(error, RequestError):
        logger.warning(
            "getUpdates was rejected",
            extra={
                "api_endpoint": "getUpdates",
                "error_code": error.error_code,
                "description": error.description,
                "retry_after": error.retry_after,
            },
        )
    else:
        logger.warning(
            "getUpdates failed",
            extra={"api_endpoint": "getUpdates", "error_type": type(error).__name__, "error": str(error)},
        )


@dataclasses.dataclass(slots=True)
class PollingStats:
    """Counters of the polling loop."""
    received: int = 0    # raw updates fetched
    dispatched: int = 0  # updates decoded and handed to the dispatcher
    skipped: int = 0     # updates that failed to decode
    errors: int = 0      # ticks that ended in an error


class Polling:
    """Configures and runs the long-polling loop.

    Args:
        client: Client used for ``getUpdates`` and set-up calls.
        dispatcher: Receives every decoded update.
        limit: Maximum updates per fetch (1-100).
        timeout: Server-side long-poll duration in seconds.
        allowed_updates: Update kinds the server should send.
        poll_interval: Minimum time between the starts of two ticks.
        request_timeout: Wall-clock bound for every request; defaults to
            ``timeout + 60`` seconds.  A fetch that outlives it is awaited again
            on the next tick instead of being repeated.
        error_handler: Called with each per-tick error; sync or async.
        last_n_updates: Start with only the last *n* pending updates.
    """

    def __init__(
        self,
        client: Client,
        dispatcher: Dispatcher,
        *,
        limit: Optional[int] = None,
        timeout: Optional[int] = None,
        allowed_updates: Optional[Sequence[str]] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        request_timeout: Optional[float] = None,
        error_handler: Optional[ErrorHandler] = None,
        last_n_updates: Optional[int] = None,
    ) -> None:
        if limit is not None and not 1 <= limit <= 100:
            raise ValueError("limit must be between 1 and 100")
        if timeout is not None and timeout < 0:
            raise ValueError("timeout must not be negative")
        if poll_interval < 0:
            raise ValueError("poll_interval must not be negative")
        if last_n_updates is not None and last_n_updates < 1:
            raise ValueError("last_n_updates must be positive")

        self.client = client
        self.dispatcher = dispatcher
        self.limit = limit
        self.timeout = timeout
        self.allowed_updates = list(allowed_updates) if allowed_updates is not None else None
        self.poll_interval = poll_interval
        self.request_timeout = (
            request_timeout if request_timeout is not None else (timeout or 0) + REQUEST_TIMEOUT_MARGIN
        )
        self.error_handler: ErrorHandler = error_handler or default_error_handler
        self.offset: Optional[int] = -last_n_updates if last_n_updates is not None else None
        self.stats = PollingStats()
        self._handler_tasks: set[asyncio.Task] = set()
        self._inflight: Optional[asyncio.Future] = None

    # ── set-up ───────────────────────────────────────────────────────────

    async def _setup_call(self, stage: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), self.request_timeout)
        except asyncio.TimeoutError as exc:
            raise PollingSetupError(stage, PollingTimeoutError(self.request_timeout), timed_out=True) from exc
        except MethodCallError as exc:
            raise PollingSetupError(stage, exc) from exc

    async def setup(self) -> None:
        """Delete any webhook and advertise the registered commands.

        Raises:
            PollingSetupError: If either call fails or times out.
        """
        await self._setup_call("delete_webhook", self.client.delete_webhook)
        logger.debug("Webhook deleted", extra={"api_endpoint": "deleteWebhook"})

        commands = self.dispatcher.registry.bot_commands()
        if commands:
            await self._setup_call("set_my_commands", self.client.set_my_commands, commands)
            logger.debug("Bot commands set", extra={"api_endpoint": "setMyCommands", "count": len(commands)})

    # ── one tick ─────────────────────────────────────────────────────────

    def _remaining(self, started: float) -> float:
        elapsed = asyncio.get_running_loop().time() - started
        return max(0.0, self.poll_interval - elapsed)

    async def poll_once(self) -> float:
        """Run one fetch-decode-dispatch tick.

        Returns:
            Seconds to wait before the next tick: ``retry_after`` when the
            server asked for it, else what remains of ``poll_interval``.
        """
        started = asyncio.get_running_loop().time()
        fetch = self._inflight
        if fetch is None:
            fetch = asyncio.ensure_future(
                asyncio.to_thread(
                    self.client.get_updates,
                    self.offset,
                    self.limit,
                    self.timeout,
                    self.allowed_updates,
                    self.request_timeout,
                )
            )
            self._inflight = fetch
        try:
            raw_updates = await asyncio.wait_for(asyncio.shield(fetch), self.request_timeout)
        except asyncio.TimeoutError:
            # The worker thread cannot be cancelled; the next tick awaits the same fetch.
            self._report(PollingTimeoutError(self.request_timeout))
            return self._remaining(started)
        except RequestError as exc:
            self._report(exc)
            if exc.retry_after is not None:
                logger.info(
                    "Flood control, delaying next fetch",
                    extra={"api_endpoint": "getUpdates", "retry_after": exc.retry_after},
                )
                return float(exc.retry_after)
            return self._remaining(started)
        except MethodCallError as exc:
            self._report(exc)
            return self._remaining(started)
        finally:
            if fetch.done():
                self._inflight = None

        self._handle_batch(raw_updates)
        return self._remaining(started)

    def _advance_offset(self, raw_updates: list) -> None:
        ids = [
            item["update_id"]
            for item in raw_updates
            if isinstance(item, dict)
            and isinstance(item.get("update_id"), int)
            and not isinstance(item["update_id"], bool)
        ]
        if not ids:
            return
        next_offset = max(ids) + 1
        if self.offset is None or next_offset > self.offset:
            self.offset = next_offset

    def _handle_batch(self, raw_updates: list) -> None:
        if not raw_updates:
            return
        self._advance_offset(raw_updates)
        logger.debug("Received updates", extra={"count": len(raw_updates), "offset": self.offset})

        for raw in raw_updates:
            self.stats.received += 1
            try:
                update = decode_update(raw, self.client)
            except DecodeError as exc:
                self.stats.skipped += 1
                logger.warning(
                    "Skipping update that could not be decoded",
                    extra={"update_id": exc.update_id, "reason": exc.reason, "detail": exc.detail},
                )
                continue
            self.dispatcher.dispatch(update)
            self.stats.dispatched += 1

    # ── error handler ────────────────────────────────────────────────────

    def _report(self, error: PollingError) -> None:
        self.stats.errors += 1
        try:
            result = self.error_handler(error)
        except Exception:
            logger.exception("Polling error handler failed", extra={"error_type": type(error).__name__})
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._handler_tasks.add(task)
            task.add_done_callback(self._error_handler_done)

    def _error_handler_done(self, task: asyncio.Task) -> None:
        self._handler_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Polling error handler failed", exc_info=exc)

    # ── loop ─────────────────────────────────────────────────────────────

    async def start(self) -> NoReturn:
        """Set up, then poll forever.

        Only :class:`PollingSetupError` (or cancellation) leaves this method.
        """
        self.dispatcher.registry.freeze()
        await self.setup()
        logger.info(
            "Polling for updates",
            extra={"limit": self.limit, "timeout": self.timeout, "offset": self.offset},
        )
        while True:
            delay = await self.poll_once()
            await asyncio.sleep(delay)
