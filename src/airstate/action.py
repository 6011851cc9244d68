"""Actions: fire-and-forget pulses on named, typed channels.

A Pulse names an action and the payload type it carries. The runtime keeps
one channel per action name; asking for the same name with a different
payload type fails when the channel is requested, so handlers never have to
inspect payload types at delivery time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar

from airstate.cell import namespace_of

if TYPE_CHECKING:
    from airstate.runtime import Runtime

T = TypeVar("T")

SuccessCallback = Callable[[], None]
ErrorCallback = Callable[[str], None]


@dataclass(frozen=True)
class ActionEnvelope:
    """What the delegate's transport carries for one pulse."""

    action: str
    payload: Any = None
    source_module_id: str | None = None
    tag: str | None = None
    on_success: SuccessCallback | None = None
    on_error: ErrorCallback | None = None


class Pulse(Generic[T]):
    """A named action channel with a declared payload type.

    Usage:
        add_task = Pulse("tasks.add", str)

        runtime.channel(add_task.name, str)  # registers the channel
        add_task.pulse(runtime, "buy milk")  # source inferred as "tasks"
    """

    __slots__ = ("name", "payload_type")

    def __init__(self, name: str, payload_type: type[T] | None = None) -> None:
        self.name = name
        self.payload_type = payload_type

    @property
    def tag(self) -> str | None:
        return self.payload_type.__qualname__ if self.payload_type is not None else None

    def accepts(self, payload: Any) -> bool:
        return self.payload_type is None or payload is None or isinstance(payload, self.payload_type)

    def pulse(
        self,
        runtime: Runtime,
        payload: T,
        *,
        source_module_id: str | None = None,
        on_success: SuccessCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        """Emit on runtime. Without a source, the name's prefix is used."""
        runtime.channel(self.name, self.payload_type)
        runtime.pulse(
            self.name,
            payload,
            source_module_id=source_module_id or namespace_of(self.name),
            on_success=on_success,
            on_error=on_error,
        )

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Pulse)
            and other.name == self.name
            and other.payload_type is self.payload_type
        )

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        return f"Pulse({self.name!r}, {self.tag})"
