"""Bot runtime — handler registry, dispatcher and long-polling engine.

This package may import from ``sdk/`` and ``core/`` only; it never reads
``config``.
"""

from bot.dispatcher import Dispatcher
from bot.polling import Polling, PollingStats, default_error_handler
from bot.registry import ANY, CommandEntry, HandlerRegistry

__all__ = [
    # Registry
    "ANY",
    "CommandEntry",
    "HandlerRegistry",
    # Dispatch
    "Dispatcher",
    # Polling
    "Polling",
    "PollingStats",
    "default_error_handler",
]
