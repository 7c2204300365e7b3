"""Handler registry — single source of truth for kind/command → handler mapping.

Handlers subscribe to an update ``kind`` (``"text"``, ``"photo"``,
``"data_callback"``, ...; see :data:`sdk.updates.UPDATE_KINDS`), to a slash
command, or to every update via :data:`ANY`.  The registry is a plain object
constructed by the application; nothing is registered at import time.

Usage::

    registry = HandlerRegistry()

    @registry.on("text")
    async def echo(update): ...

    @registry.command("start", description="Start the bot")
    async def start(update): ...

The registry is frozen by the polling engine when the loop starts; handler
sets are fixed from then on.
"""

from __future__ import annotations

import dataclasses
import re
from typing import Any, Awaitable, Callable, Union

from sdk.models import BotCommand
from sdk.updates import UPDATE_KINDS, Update

# ── Types ────────────────────────────────────────────────────────────────────

#: A handler receives the decoded update; it may be sync or async.
HandlerFunc = Callable[[Update], Union[Awaitable[Any], Any]]

#: Subscribe to every update regardless of kind.
ANY = "any"

_COMMAND_RE = re.compile(r"^[a-z0-9_]{1,32}$")


# ── Registry entry ───────────────────────────────────────────────────────────

@dataclasses.dataclass(frozen=True, slots=True)
class CommandEntry:
    """Metadata for a single registered slash-command."""
    command: str                    # e.g. "start" (no leading slash)
    handler: HandlerFunc
    description: str | None = None  # advertised via setMyCommands when set


def normalize_command(name: str) -> str:
    """Strip the leading ``/`` and validate a command name.

    Raises:
        ValueError: If the name is not 1-32 lowercase letters, digits or ``_``.
    """
    command = name[1:] if name.startswith("/") else name
    if not _COMMAND_RE.match(command):
        raise ValueError(f"Invalid command name: {name!r}")
    return command


# ── Registry ─────────────────────────────────────────────────────────────────

class HandlerRegistry:
    """Per-kind and per-command handler lists."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[HandlerFunc]] = {}
        self._commands: dict[str, CommandEntry] = {}
        self._frozen = False

    def _check_open(self) -> None:
        if self._frozen:
            raise RuntimeError("Handlers cannot be registered after polling has started")

    # ── registration ─────────────────────────────────────────────────────

    def register(self, kind: str, handler: HandlerFunc) -> HandlerFunc:
        """Subscribe *handler* to updates of *kind*.

        Raises:
            ValueError: If *kind* is not a kind the decoder produces.
            RuntimeError: If the registry is frozen.
        """
        if kind != ANY and kind not in UPDATE_KINDS:
            raise ValueError(f"Unknown update kind: {kind!r}")
        self._check_open()
        self._handlers.setdefault(kind, []).append(handler)
        return handler

    def on(self, kind: str) -> Callable[[HandlerFunc], HandlerFunc]:
        """Decorator form of :meth:`register`."""
        def decorator(func: HandlerFunc) -> HandlerFunc:
            return self.register(kind, func)
        return decorator

    def register_command(
        self, name: str, handler: HandlerFunc, *, description: str | None = None,
    ) -> HandlerFunc:
        """Bind *handler* to the slash-command *name*; one handler per command."""
        command = normalize_command(name)
        self._check_open()
        if command in self._commands:
            raise ValueError(f"Command /{command} is already registered")
        self._commands[command] = CommandEntry(command=command, handler=handler, description=description)
        return handler

    def command(self, name: str, *, description: str | None = None) -> Callable[[HandlerFunc], HandlerFunc]:
        """Decorator that registers a handler for ``/name``.

        Example::

            @registry.command("help", description="Show help")
            async def handle_help(update): ...
        """
        def decorator(func: HandlerFunc) -> HandlerFunc:
            return self.register_command(name, func, description=description)
        return decorator

    def freeze(self) -> None:
        """Reject further registrations."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ── lookup helpers ───────────────────────────────────────────────────

    def handlers_for(self, kind: str) -> list[HandlerFunc]:
        """Return the handlers subscribed to *kind* (not including :data:`ANY`)."""
        return list(self._handlers.get(kind, ()))

    def get_command(self, name: str) -> CommandEntry | None:
        """Return the entry for *name* (with or without ``/``), or ``None``."""
        return self._commands.get(name.lstrip("/").lower())

    def entries(self) -> dict[str, CommandEntry]:
        """Return a copy of all registered commands."""
        return dict(self._commands)

    def bot_commands(self) -> list[BotCommand]:
        """Commands to advertise with ``setMyCommands``: those with a description."""
        return [
            BotCommand(command=entry.command, description=entry.description)
            for entry in self._commands.values()
            if entry.description
        ]
