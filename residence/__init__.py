"""Residence governance service: proposals, votes and weighted tallies."""

from typing import Any

__all__ = ["create_application"]


def __getattr__(name: str) -> Any:
    # Importing models or services must not build the ASGI app.
    if name == "create_application":
        from .main import create_application

        return create_application
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
