"""
Tagged values produced by the interpreter.

A NewtonScript result graph is dynamically typed. The pipeline only ever
looks at it through these accessors, which answer None for the wrong kind
instead of coercing:

    Nil | String | Symbol | Array | Frame | Opaque

Interpreter backends that run out of process hand the graph over as a
tagged JSON document; from_json() turns it into values:

    null                      -> NIL
    {"string": "Hello"}       -> String
    {"symbol": "Hello:SIG"}   -> Symbol
    {"array": [...]}          -> Array
    {"frame": {"slot": ...}}  -> Frame
    {"other": "int"}          -> Opaque
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple


class Value:
    """Base class for interpreter values."""

    kind = "value"

    def as_string(self) -> Optional[str]:
        return None

    def as_symbol(self) -> Optional[str]:
        return None

    def as_array(self) -> Optional["Array"]:
        return None

    def as_frame(self) -> Optional["Frame"]:
        return None

    def is_nil(self) -> bool:
        return False


class Nil(Value):
    kind = "nil"

    def is_nil(self) -> bool:
        return True

    def __repr__(self) -> str:
        return "NIL"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Nil)

    def __hash__(self) -> int:
        return hash("nil")


NIL = Nil()


@dataclass(frozen=True)
class String(Value):
    text: str
    kind = "string"

    def as_string(self) -> Optional[str]:
        return self.text


@dataclass(frozen=True)
class Symbol(Value):
    name: str
    kind = "symbol"

    def as_symbol(self) -> Optional[str]:
        return self.name


@dataclass(frozen=True)
class Array(Value):
    items: Tuple[Value, ...] = ()
    kind = "array"

    def as_array(self) -> Optional["Array"]:
        return self

    def at(self, index: int) -> Value:
        """Element at index, NIL when out of range."""
        if 0 <= index < len(self.items):
            return self.items[index]
        return NIL

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class Frame(Value):
    slots: Mapping[str, Value] = field(default_factory=dict)
    kind = "frame"

    def as_frame(self) -> Optional["Frame"]:
        return self

    def get(self, name: str) -> Value:
        """Slot value, NIL when the slot is missing."""
        return self.slots.get(name, NIL)


@dataclass(frozen=True)
class Opaque(Value):
    """Any interpreter object the pipeline has no accessor for."""

    type_name: str = "unknown"
    kind = "opaque"


def frame(**slots: Any) -> Frame:
    """Build a Frame from keyword slots, wrapping plain Python values."""
    return Frame({name: wrap(value) for name, value in slots.items()})


def wrap(value: Any) -> Value:
    """Wrap plain Python data: str -> String, list -> Array, dict -> Frame."""
    if isinstance(value, Value):
        return value
    if value is None:
        return NIL
    if isinstance(value, str):
        return String(value)
    if isinstance(value, (list, tuple)):
        return Array(tuple(wrap(v) for v in value))
    if isinstance(value, dict):
        return Frame({str(k): wrap(v) for k, v in value.items()})
    return Opaque(type(value).__name__)


def from_json(obj: Any) -> Value:
    """Decode the tagged JSON dump form. Raises ValueError on malformed input."""
    if obj is None:
        return NIL
    if not isinstance(obj, dict) or len(obj) != 1:
        raise ValueError(f"Malformed value: {obj!r}")

    (tag, payload), = obj.items()
    if tag == "string" and isinstance(payload, str):
        return String(payload)
    if tag == "symbol" and isinstance(payload, str):
        return Symbol(payload)
    if tag == "array" and isinstance(payload, list):
        return Array(tuple(from_json(item) for item in payload))
    if tag == "frame" and isinstance(payload, dict):
        return Frame({str(k): from_json(v) for k, v in payload.items()})
    if tag == "other":
        return Opaque(str(payload))
    raise ValueError(f"Malformed value: {obj!r}")


def to_python(value: Value) -> Any:
    """Render a value as plain Python data, for display."""
    if isinstance(value, String):
        return value.text
    if isinstance(value, Symbol):
        return f"'{value.name}"
    if isinstance(value, Array):
        return [to_python(v) for v in value.items]
    if isinstance(value, Frame):
        return {k: to_python(v) for k, v in value.slots.items()}
    if isinstance(value, Opaque):
        return f"<{value.type_name}>"
    return None
