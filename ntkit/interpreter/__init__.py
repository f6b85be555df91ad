"""
Interpreter backends.

Backends are looked up by name: the built-in `newt` backend first, then
any factory registered under the `ntkit.interpreters` entry-point group.
A factory is called with the InterpreterConfig and returns a fresh
InterpreterSession.
"""

import logging
from importlib.metadata import entry_points
from typing import Callable, Dict

from ntkit.config import InterpreterConfig
from ntkit.errors import InterpreterError
from ntkit.interpreter.base import InterpreterSession, OutputCapture
from ntkit.interpreter.newt import NewtSession

logger = logging.getLogger(__name__)

SessionFactory = Callable[[InterpreterConfig], InterpreterSession]

ENTRY_POINT_GROUP = "ntkit.interpreters"

BUILTIN_BACKENDS: Dict[str, SessionFactory] = {
    "newt": NewtSession,
}

__all__ = [
    "InterpreterSession",
    "OutputCapture",
    "NewtSession",
    "SessionFactory",
    "get_session_factory",
]


def discover_backends() -> Dict[str, SessionFactory]:
    """Built-in backends plus those registered through entry points."""
    backends = dict(BUILTIN_BACKENDS)
    for ep in entry_points().select(group=ENTRY_POINT_GROUP):
        if ep.name in backends:
            continue
        try:
            backends[ep.name] = ep.load()
        except Exception as e:
            logger.warning(
                f"Could not load interpreter backend '{ep.name}': {e}",
                extra={"event": "backend_load_failed", "metadata": {"entry_point": ep.value}},
            )
    return backends


def get_session_factory(name: str) -> SessionFactory:
    """
    Get the session factory for a backend name.

    Raises:
        InterpreterError: If no backend has that name
    """
    if name in BUILTIN_BACKENDS:
        return BUILTIN_BACKENDS[name]

    backends = discover_backends()
    if name not in backends:
        raise InterpreterError(
            f"Unknown interpreter backend: {name}. Available: {', '.join(sorted(backends))}"
        )
    return backends[name]
