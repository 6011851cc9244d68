"""Registry: the authoritative key -> Cell mapping.

Cells are created lazily on first access. The type bound at creation is
fixed for the cell's lifetime; asking for the same key with a type the cell
does not satisfy is a TypeConflict, never a coercion.

Optional[X], X | None and other unions bind to their member classes. A
nullable binding accepts None and starts at None when no initial value is
given. Any binds to object.
"""

from __future__ import annotations

import types
import typing
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Iterator, Mapping

from airstate.cell import Cell
from airstate.errors import MissingInitialValue, TypeConflict

if TYPE_CHECKING:
    from airstate.runtime import Runtime


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

_NONE_TYPE = type(None)

# Types whose no-argument constructor is a usable starting value.
_ZERO_CONSTRUCTIBLE = (int, float, complex, str, bytes, bool, list, dict, set, frozenset, tuple)


def zero_value(type_: Any, nullable: bool = False) -> Any:
    """The zero value of type_, or MISSING when it has none."""
    if nullable:
        return None
    if type_ in _ZERO_CONSTRUCTIBLE:
        return type_()
    return MISSING


def _runtime_class(member: Any) -> Any:
    if member is Any:
        return object
    # list[int] -> list
    return typing.get_origin(member) or member


def _normalize(type_: Any) -> tuple[Any, bool] | None:
    """(class or tuple of classes, nullable) for a type annotation."""
    if type_ is None:
        return None
    if typing.get_origin(type_) in (typing.Union, types.UnionType):
        members = typing.get_args(type_)
    else:
        members = (type_,)
    nullable = _NONE_TYPE in members
    classes = tuple(dict.fromkeys(_runtime_class(m) for m in members if m is not _NONE_TYPE))
    if not classes:
        return _NONE_TYPE, True
    if object in classes:
        return object, True
    return (classes[0] if len(classes) == 1 else classes), nullable


def _members(bound: Any) -> tuple[type, ...]:
    return bound if isinstance(bound, tuple) else (bound,)


def _satisfies(cell: Cell, wanted: Any, nullable: bool) -> bool:
    if cell.nullable and not nullable:
        return False
    return all(issubclass(have, wanted) for have in _members(cell.type))


class Registry:
    """Key -> Cell mapping owned by a Runtime."""

    def __init__(self, runtime: Runtime) -> None:
        self._runtime = runtime
        self._cells: dict[str, Cell] = {}

    def get_or_create(self, key: str, type_: Any = None, initial: Any = MISSING) -> Cell:
        """Return the cell for key, creating it if absent.

        Raises TypeConflict when the existing cell's type does not satisfy
        type_, and MissingInitialValue when the key is new, no initial value
        was given and type_ has no zero value.
        """
        normalized = _normalize(type_)
        existing = self._cells.get(key)
        if existing is not None:
            if normalized is not None and not _satisfies(existing, *normalized):
                raise TypeConflict(key, existing.type, type_)
            return existing

        if normalized is None:
            if initial is MISSING:
                raise MissingInitialValue(key, None)
            bound, nullable = (object, True) if initial is None else (type(initial), False)
        else:
            bound, nullable = normalized
            if initial is MISSING:
                initial = zero_value(bound, nullable)
                if initial is MISSING:
                    raise MissingInitialValue(key, type_)
            elif initial is None and not nullable:
                raise TypeConflict(key, None, type_)
            elif initial is not None and not isinstance(initial, bound):
                raise TypeConflict(key, type(initial), type_)

        cell = Cell(self._runtime, key, initial, bound, nullable=nullable)
        self._cells[key] = cell
        return cell

    def get(self, key: str) -> Cell | None:
        return self._cells.get(key)

    def remove(self, key: str) -> bool:
        """Detach and discard the cell for key. Returns False if absent."""
        cell = self._cells.pop(key, None)
        if cell is None:
            return False
        cell._dispose()
        return True

    def clear(self) -> None:
        for cell in self._cells.values():
            cell._dispose()
        self._cells.clear()

    def snapshot(self) -> Mapping[str, Cell]:
        """Read-only view of the current cells, for debugging tools."""
        return MappingProxyType(dict(self._cells))

    def __contains__(self, key: object) -> bool:
        return key in self._cells

    def __len__(self) -> int:
        return len(self._cells)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._cells))

    def __repr__(self) -> str:
        return f"Registry({list(self._cells)!r})"
