"""Textual integration for airstate. Opt-in; requires textual.

Bridges tracked views to Textual widgets: effects are skipped while the app
is not running or is paused for widget replacement, NoMatches from widget
queries is swallowed, and triggers from background threads are marshaled
with app.call_from_thread.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from textual.css.query import NoMatches

from airstate.cell import namespace_of
from airstate.reaction import Reaction, Watcher
from airstate.runtime import Runtime

logger = logging.getLogger("airstate.textual")

# Keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app) -> Iterator[None]:
    """Suspend guarded views during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def _guard(app, fn: Callable[..., None]) -> Callable[..., None]:
    main = threading.get_ident()

    def _safe(*args: Any) -> None:
        try:
            fn(*args)
        except NoMatches:
            logger.debug("Widget not mounted; skipped %r", fn)

    def _guarded(*args: Any) -> None:
        if not is_safe(app):
            return
        if threading.get_ident() != main:
            app.call_from_thread(_safe, *args)
        else:
            _safe(*args)

    return _guarded


def view(app, runtime: Runtime, fn: Callable[[], None]) -> Watcher:
    """autorun() that renders into widgets only when the app can take it.

    Dependencies are still tracked while the app is paused, so the view stays
    subscribed and picks up the next change once it is safe again. Pair with
    runtime.set_scheduler(app.call_from_thread) so background writes re-render
    on the app thread.
    """
    handle: list[Watcher] = []

    def _render() -> None:
        if not is_safe(app):
            # Re-read the last dependencies so the diff keeps them subscribed.
            if handle:
                for cell in handle[0].dependencies:
                    cell.get()
            return
        try:
            fn()
        except NoMatches:
            logger.debug("Widget not mounted; skipped %r", fn)

    handle.append(runtime.autorun(_render))
    return handle[0]


def reaction(
    app,
    runtime: Runtime,
    data_fn: Callable[[], Any],
    effect_fn: Callable[[Any], None],
    *,
    fire_immediately: bool = False,
) -> Reaction:
    """runtime.reaction() whose effect is guarded for Textual widgets."""
    return runtime.reaction(data_fn, _guard(app, effect_fn), fire_immediately=fire_immediately)


def builder(
    app,
    runtime: Runtime,
    key: str,
    effect_fn: Callable[[Any], None],
    *,
    initial: Any = None,
    caller_module_id: str | None = None,
) -> Reaction:
    """Push key's value into effect_fn now and on every change.

    Creates the cell with initial if it does not exist yet. When the caller's
    module differs from the key's namespace, each render is recorded as a
    data interaction from the owning module to the caller.
    """
    cell = runtime.state(key, initial=initial)
    owner = namespace_of(key)

    def _render(value: Any) -> None:
        if caller_module_id is not None and owner is not None and owner != caller_module_id:
            runtime.delegate.record_interaction(owner, caller_module_id, "data", key)
        effect_fn(value)

    return reaction(app, runtime, cell.get, _render, fire_immediately=True)
