"""Command line tools for the TDS telemetry bridge."""

from importlib import import_module
from types import ModuleType


def __getattr__(name: str) -> ModuleType:
    if name == "app":
        return import_module("cli.app")
    raise AttributeError(name)

# ``cli.app`` must resolve to the module rather than the Typer instance so
# tests can patch attributes such as ``cli.app.ApiClient`` on it.

__all__ = []
