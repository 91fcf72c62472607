"""
Zoom, pan and series-visibility state for a chart.

A chart never branches on where its state lives. It is constructed with a
``ViewStateSource``: ``LocalViewState`` owns a private ``ViewState``;
``SharedViewState`` reads and writes the one tuple held by a
``ComparisonCoordinator`` while a synced comparison is open.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, AbstractSet

from insight_stream.windowing import DEFAULT_PAN, DEFAULT_ZOOM, MAX_ZOOM, MIN_ZOOM, clamp

if TYPE_CHECKING:
    from insight_stream.comparison import ComparisonCoordinator


def toggle_series(hidden: AbstractSet[str], key: str) -> frozenset[str]:
    """Return a new hidden-set with ``key`` flipped; ``hidden`` is left as is."""
    if key in hidden:
        return frozenset(hidden) - {key}
    return frozenset(hidden) | {key}


def is_series_visible(hidden: AbstractSet[str], key: str) -> bool:
    return key not in hidden


@dataclass(frozen=True)
class ViewState:
    zoom: float = DEFAULT_ZOOM
    pan: float = DEFAULT_PAN
    hidden: frozenset[str] = field(default_factory=frozenset)

    def with_zoom(self, zoom: float) -> "ViewState":
        return replace(self, zoom=clamp(float(zoom), MIN_ZOOM, MAX_ZOOM))

    def with_pan(self, pan: float) -> "ViewState":
        return replace(self, pan=clamp(float(pan), 0.0, 1.0))

    def with_toggled(self, key: str) -> "ViewState":
        return replace(self, hidden=toggle_series(self.hidden, key))


class ViewStateSource(ABC):
    @abstractmethod
    def get(self) -> ViewState:
        raise NotImplementedError

    @abstractmethod
    def set(self, state: ViewState) -> None:
        raise NotImplementedError

    def set_zoom(self, zoom: float) -> ViewState:
        state = self.get().with_zoom(zoom)
        self.set(state)
        return state

    def set_pan(self, pan: float) -> ViewState:
        state = self.get().with_pan(pan)
        self.set(state)
        return state

    def toggle_series(self, key: str) -> ViewState:
        state = self.get().with_toggled(key)
        self.set(state)
        return state


class LocalViewState(ViewStateSource):
    def __init__(self, state: ViewState | None = None) -> None:
        self._state = state or ViewState()

    def get(self) -> ViewState:
        return self._state

    def set(self, state: ViewState) -> None:
        self._state = state


class SharedViewState(ViewStateSource):
    def __init__(self, coordinator: "ComparisonCoordinator") -> None:
        self._coordinator = coordinator

    def get(self) -> ViewState:
        return self._coordinator.shared_state()

    def set(self, state: ViewState) -> None:
        self._coordinator.update_shared(state)
