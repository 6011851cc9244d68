"""Error taxonomy.

TypeConflict and MissingInitialValue are programming errors and are raised to
the caller. ComputeFailure and PersistenceFailure come out of derived or
background machinery; they are built, logged through the delegate and never
propagated. SerializationFallback is a warning category, not an error.
"""

from __future__ import annotations


class AirStateError(Exception):
    """Base class for every airstate error."""


class TypeConflict(AirStateError, TypeError):
    """A key (or action channel) was accessed with an incompatible type."""

    def __init__(self, key: str, existing: object, requested: object) -> None:
        self.key = key
        self.existing = existing
        self.requested = requested
        super().__init__(
            f"{key!r} is bound to {_type_name(existing)}, "
            f"but {_type_name(requested)} was requested"
        )


class MissingInitialValue(AirStateError, ValueError):
    """A new cell was requested without an initial value or a zero value."""

    def __init__(self, key: str, type_: object) -> None:
        self.key = key
        self.type = type_
        super().__init__(f"initial value required for new state {key!r} of type {_type_name(type_)}")


class ComputeFailure(AirStateError):
    """A computed registration's derivation raised."""

    def __init__(self, target_key: str, error: BaseException) -> None:
        self.target_key = target_key
        self.error = error
        super().__init__(f"error computing {target_key!r}: {error!r}")


class PersistenceFailure(AirStateError):
    """A storage read, write or remove raised."""

    def __init__(self, operation: str, error: BaseException) -> None:
        self.operation = operation
        self.error = error
        super().__init__(f"failed to {operation} state: {error!r}")


class SerializationFallback(UserWarning):
    """A value had no structured serialization and was stored as text."""


def _type_name(t: object) -> str:
    if t is None:
        return "None"
    if isinstance(t, tuple):
        return " | ".join(_type_name(member) for member in t)
    return getattr(t, "__qualname__", None) or repr(t)
