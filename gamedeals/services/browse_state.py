# gamedeals/services/browse_state.py

"""UI-facing browse state, advanced only by coordinator events."""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from gamedeals.models.deal import Deal
from gamedeals.models.errors import ErrorKind
from gamedeals.models.filter import Filter

logger = logging.getLogger("gamedeals.browse")


# ── States ───────────────────────────────────────────────


@dataclass(frozen=True)
class Idle:
    """Nothing has been requested yet."""


@dataclass(frozen=True)
class Loading:
    """A live fetch is in flight.

    ``deals`` holds what is already on screen when the fetch appends a
    next page, so the renderer can keep the list visible.
    """

    filter: Filter
    deals: tuple[Deal, ...] = ()
    appending: bool = False


@dataclass(frozen=True)
class Loaded:
    filter: Filter
    deals: tuple[Deal, ...]
    has_more: bool


@dataclass(frozen=True)
class Error:
    filter: Filter
    kind: ErrorKind
    message: str = ""


BrowseState = Idle | Loading | Loaded | Error


# ── Events emitted by the coordinator ────────────────────


@dataclass(frozen=True)
class LoadStarted:
    filter: Filter
    deals: tuple[Deal, ...] = ()
    appending: bool = False


@dataclass(frozen=True)
class PageLoaded:
    filter: Filter
    deals: tuple[Deal, ...]
    has_more: bool


@dataclass(frozen=True)
class LoadFailed:
    filter: Filter
    kind: ErrorKind
    message: str = ""


BrowseEvent = LoadStarted | PageLoaded | LoadFailed

Listener = Callable[[BrowseState], None]


class BrowseStateMachine:
    """Holds the current :data:`BrowseState` and notifies subscribers.

    The machine is re-enterable forever: every state accepts every
    event.  Only :meth:`apply` changes state, and only the query
    coordinator calls it.
    """

    def __init__(self) -> None:
        self._state: BrowseState = Idle()
        self._listeners: list[Listener] = []

    @property
    def state(self) -> BrowseState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* for every transition; returns an unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def apply(self, event: BrowseEvent) -> BrowseState:
        """Advance the machine with a coordinator event."""
        new_state: BrowseState
        if isinstance(event, LoadStarted):
            new_state = Loading(event.filter, event.deals, event.appending)
        elif isinstance(event, PageLoaded):
            new_state = Loaded(event.filter, event.deals, event.has_more)
        elif isinstance(event, LoadFailed):
            new_state = Error(event.filter, event.kind, event.message)
        else:
            raise TypeError(f"Unknown browse event: {event!r}")

        previous = self._state
        self._state = new_state
        logger.debug(
            "Browse state %s -> %s",
            type(previous).__name__,
            type(new_state).__name__,
        )
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception:
                logger.error("Browse state listener failed", exc_info=True)
        return new_state
