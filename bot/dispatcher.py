"""Update dispatcher.

Routes each decoded update to the handlers registered for it in a
:class:`~bot.registry.HandlerRegistry`.  Every handler runs as an independent
:func:`asyncio.create_task`, so a slow handler (API calls, DB writes) never
blocks the polling loop from fetching the next batch, and a failing one is
logged and forgotten.
"""

from __future__ import annotations

import asyncio
import inspect

from bot.registry import ANY, HandlerFunc, HandlerRegistry
from core.logger import TgwireLogger
from sdk.updates import Update

logger = TgwireLogger.get_logger()


async def _run(handler: HandlerFunc, update: Update) -> None:
    result = handler(update)
    if inspect.isawaitable(result):
        await result


class Dispatcher:
    """Fans a decoded update out to its handlers.

    Order of launch: handlers for ``update.kind``, then the command handler
    for ``command`` updates, then :data:`~bot.registry.ANY` handlers.
    """

    def __init__(self, registry: HandlerRegistry) -> None:
        self.registry = registry
        # Strong references; the event loop only keeps weak ones to tasks.
        self._tasks: set[asyncio.Task] = set()

    def handlers(self, update: Update) -> list[HandlerFunc]:
        """Return every handler that should receive *update*, in launch order."""
        matched = self.registry.handlers_for(update.kind)
        if update.kind == "command":
            command = getattr(update, "command", None)
            entry = self.registry.get_command(command) if command else None
            if entry is not None:
                matched.append(entry.handler)
            else:
                logger.debug("No command matched", extra={"update_id": update.update_id, "command": command})
        matched.extend(self.registry.handlers_for(ANY))
        return matched

    def dispatch(self, update: Update) -> list[asyncio.Task]:
        """Launch a task per matching handler and return the tasks.

        Must be called from a running event loop.  The tasks are not awaited.
        """
        tasks = []
        for handler in self.handlers(update):
            task = asyncio.create_task(_run(handler, update))
            task.add_done_callback(self._make_done_callback(handler, update))
            self._tasks.add(task)
            tasks.append(task)
        if not tasks:
            logger.debug("Update has no handlers", extra={"update_id": update.update_id, "kind": update.kind})
        return tasks

    def _make_done_callback(self, handler: HandlerFunc, update: Update):
        def _done(task: asyncio.Task) -> None:
            self._tasks.discard(task)
            if task.cancelled():
                return
            exc = task.exception()
            if exc is not None:
                logger.error(
                    "Handler failed",
                    extra={
                        "update_id": update.update_id,
                        "kind": update.kind,
                        "handler": getattr(handler, "__qualname__", repr(handler)),
                    },
                    exc_info=exc,
                )
        return _done

    @property
    def pending(self) -> int:
        """Number of handler tasks still running."""
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every running handler task (used on shutdown and in tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
