"""Core infrastructure — structured logging shared by every layer.

This package is framework-agnostic. It must NEVER import from ``bot/`` or ``sdk/``.
"""

from core.logger import TgwireLogger, redact

__all__ = [
    "TgwireLogger",
    "redact",
]
