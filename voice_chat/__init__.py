"""Voice and text chat front-end for a remote language model."""

from __future__ import annotations

from typing import Any

__all__ = ["run"]

__version__ = "0.1.0"


def run(*args: Any, **kwargs: Any) -> Any:
    """Start the terminal chat (lazy import)."""
    from .app import run as _run

    return _run(*args, **kwargs)
