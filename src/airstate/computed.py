"""Computed state: cells derived from other cells.

A registration watches the "state changed" channel for its dependency keys.
On each qualifying change it snapshots the dependency values, calls compute,
and writes the result to the target cell through the ordinary write path,
unless the result equals the last one it wrote. That equality check stops a
stable fixed point from re-triggering itself.

Cycles (A computed from B computed from A) are not detected. Such a graph
keeps re-deriving until it happens to reach a fixed point, or never does.
Keep computed dependency graphs acyclic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Generic, Iterable, Mapping, TypeVar

from airstate.errors import ComputeFailure, TypeConflict

if TYPE_CHECKING:
    from airstate.runtime import Runtime

T = TypeVar("T")

COMPUTED_SOURCE = "computed"


class _Absent:
    """Marker for a dependency whose cell does not exist."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT: Any = _Absent()

_UNSET: Any = object()

Compute = Callable[[Mapping[str, Any]], T]


@dataclass(eq=False)
class ComputedRegistration(Generic[T]):
    target_key: str
    dependencies: frozenset[str]
    compute: Compute
    name: str | None = None
    observer_id: int | None = None
    last_value: Any = field(default=_UNSET)


class ComputedGraph:
    """Computed registrations for one runtime, keyed by target."""

    def __init__(self, runtime: Runtime) -> None:
        self._runtime = runtime
        self._registrations: dict[str, ComputedRegistration] = {}

    def register(
        self,
        target_key: str,
        dependencies: Iterable[str],
        compute: Compute,
        *,
        name: str | None = None,
    ) -> ComputedRegistration:
        """Derive target_key from dependencies and seed it immediately.

        Replaces any prior registration for target_key.
        """
        self.unregister(target_key)
        registration = ComputedRegistration(target_key, frozenset(dependencies), compute, name)

        def _on_state_change(key: str, _value: Any) -> None:
            if key in registration.dependencies:
                self._update(registration)

        registration.observer_id = self._runtime.subscribe_state(_on_state_change)
        self._registrations[target_key] = registration
        self._update(registration)

        self._runtime.delegate.log(
            "Registered computed state",
            {"key": target_key, "dependencies": sorted(registration.dependencies)},
        )
        return registration

    def unregister(self, target_key: str) -> bool:
        """Stop deriving target_key. Its current value is left as is."""
        registration = self._registrations.pop(target_key, None)
        if registration is None:
            return False
        if registration.observer_id is not None:
            self._runtime.unsubscribe_state(registration.observer_id)
        return True

    def is_computed(self, key: str) -> bool:
        return key in self._registrations

    @property
    def registered_keys(self) -> list[str]:
        return list(self._registrations)

    def get(self, target_key: str) -> ComputedRegistration | None:
        return self._registrations.get(target_key)

    def snapshot(self, dependencies: Iterable[str]) -> dict[str, Any]:
        """Current values of dependencies; ABSENT for keys with no cell."""
        registry = self._runtime.registry
        values = {}
        for key in dependencies:
            cell = registry.get(key)
            values[key] = cell.peek() if cell is not None else ABSENT
        return values

    def evaluate(self, dependencies: Iterable[str], compute: Compute) -> T:
        """One-off computation against current values. Nothing is registered."""
        return compute(self.snapshot(dependencies))

    def clear(self) -> None:
        for key in list(self._registrations):
            self.unregister(key)

    def _update(self, registration: ComputedRegistration) -> None:
        # A dispatch snapshot can still call a callback unregistered mid-dispatch.
        if self._registrations.get(registration.target_key) is not registration:
            return
        try:
            value = registration.compute(self.snapshot(registration.dependencies))
        except Exception as exc:
            self._fail(registration, exc)
            return

        if registration.last_value is not _UNSET and registration.last_value == value:
            return
        try:
            self._runtime.write(registration.target_key, value, source_module_id=COMPUTED_SOURCE)
        except TypeConflict as exc:
            # Target is bound to another type; keep the previous result.
            self._fail(registration, exc)
            return
        registration.last_value = value

    def _fail(self, registration: ComputedRegistration, exc: Exception) -> None:
        failure = ComputeFailure(registration.target_key, exc)
        self._runtime.delegate.log(
            "Error computing state",
            {"key": registration.target_key, "error": failure},
            is_error=True,
        )
