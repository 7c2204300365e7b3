"""Tests for the handler registry and the dispatcher."""

import asyncio
import sys
import os
from unittest.mock import AsyncMock, MagicMock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from bot.dispatcher import Dispatcher
from bot.registry import ANY, HandlerRegistry, normalize_command
from sdk.models import BotCommand
from sdk.updates import decode_update

CHAT = {"id": 1000, "type": "private"}


def _text_update(text: str = "hello", update_id: int = 1):
    return decode_update({"update_id": update_id, "message": {"message_id": 1, "date": 0, "chat": CHAT, "text": text}})


def _command_update(command: str, update_id: int = 1):
    message = {
        "message_id": 1, "date": 0, "chat": CHAT, "text": f"/{command} arg",
        "entities": [{"type": "bot_command", "offset": 0, "length": len(command) + 1}],
    }
    return decode_update({"update_id": update_id, "message": message})


# ── Registry ─────────────────────────────────────────────────────────────────


class TestHandlerRegistry:
    """Validate registration rules."""

    def test_register_kind(self) -> None:
        registry = HandlerRegistry()
        handler = MagicMock()
        assert registry.register("text", handler) is handler
        assert registry.handlers_for("text") == [handler]
        assert registry.handlers_for("photo") == []

    def test_decorators(self) -> None:
        registry = HandlerRegistry()

        @registry.on(ANY)
        async def log_all(update) -> None: ...

        @registry.command("/start", description="Start the bot")
        async def start(update) -> None: ...

        assert registry.handlers_for(ANY) == [log_all]
        assert registry.get_command("start").handler is start
        assert registry.get_command("/start").description == "Start the bot"

    def test_unknown_kind_rejected(self) -> None:
        with pytest.raises(ValueError):
            HandlerRegistry().register("txet", MagicMock())

    @pytest.mark.parametrize("name", ["", "Start", "with space", "x" * 33])
    def test_invalid_command_names(self, name: str) -> None:
        with pytest.raises(ValueError):
            normalize_command(name)

    def test_duplicate_command_rejected(self) -> None:
        registry = HandlerRegistry()
        registry.register_command("help", MagicMock())
        with pytest.raises(ValueError):
            registry.register_command("/help", MagicMock())

    def test_frozen_registry(self) -> None:
        registry = HandlerRegistry()
        registry.freeze()
        assert registry.frozen
        with pytest.raises(RuntimeError):
            registry.register("text", MagicMock())
        with pytest.raises(RuntimeError):
            registry.register_command("start", MagicMock())

    def test_bot_commands_only_described(self) -> None:
        registry = HandlerRegistry()
        registry.register_command("start", MagicMock(), description="Start")
        registry.register_command("secret", MagicMock())
        assert registry.bot_commands() == [BotCommand(command="start", description="Start")]
        assert set(registry.entries()) == {"start", "secret"}


# ── Dispatcher ───────────────────────────────────────────────────────────────


class TestDispatcher:
    """Validate routing and task handling."""

    @pytest.mark.asyncio
    async def test_kind_handlers_and_any(self) -> None:
        registry = HandlerRegistry()
        text_handler, photo_handler, any_handler = AsyncMock(), AsyncMock(), AsyncMock()
        registry.register("text", text_handler)
        registry.register("photo", photo_handler)
        registry.register(ANY, any_handler)
        dispatcher = Dispatcher(registry)

        update = _text_update()
        tasks = dispatcher.dispatch(update)
        assert len(tasks) == 2
        await dispatcher.drain()

        text_handler.assert_awaited_once_with(update)
        any_handler.assert_awaited_once_with(update)
        photo_handler.assert_not_called()
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_launch_order(self) -> None:
        registry = HandlerRegistry()
        calls = []
        registry.register(ANY, lambda update: calls.append("any"))
        registry.register("command", lambda update: calls.append("kind"))
        registry.register_command("start", lambda update: calls.append("command"))
        dispatcher = Dispatcher(registry)

        dispatcher.dispatch(_command_update("start"))
        await dispatcher.drain()
        assert calls == ["kind", "command", "any"]

    @pytest.mark.asyncio
    async def test_command_routing(self) -> None:
        registry = HandlerRegistry()
        start, help_ = AsyncMock(), AsyncMock()
        registry.register_command("start", start)
        registry.register_command("help", help_)
        dispatcher = Dispatcher(registry)

        dispatcher.dispatch(_command_update("help"))
        await dispatcher.drain()
        help_.assert_awaited_once()
        start.assert_not_called()

    @pytest.mark.asyncio
    async def test_unregistered_command(self) -> None:
        registry = HandlerRegistry()
        registry.register_command("start", AsyncMock())
        assert Dispatcher(registry).dispatch(_command_update("stop")) == []

    @pytest.mark.asyncio
    async def test_handler_failure_is_logged(self, caplog) -> None:
        registry = HandlerRegistry()
        survivor = AsyncMock()
        registry.register("text", AsyncMock(side_effect=RuntimeError("boom")))
        registry.register("text", survivor)
        dispatcher = Dispatcher(registry)

        dispatcher.dispatch(_text_update(update_id=55))
        await dispatcher.drain()
        await asyncio.sleep(0)

        survivor.assert_awaited_once()
        failures = [r for r in caplog.records if r.getMessage() == "Handler failed"]
        assert len(failures) == 1
        assert failures[0].update_id == 55

    @pytest.mark.asyncio
    async def test_sync_handler(self) -> None:
        registry = HandlerRegistry()
        handler = MagicMock(return_value=None)
        registry.register("text", handler)
        dispatcher = Dispatcher(registry)

        update = _text_update()
        dispatcher.dispatch(update)
        await dispatcher.drain()
        handler.assert_called_once_with(update)
