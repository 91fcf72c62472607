from __future__ import annotations

from enum import Enum

from insight_stream.logger import get_logger
from insight_stream.view_state import SharedViewState, ViewState

logger = get_logger(__name__)

MIN_COMPARED_CHARTS = 2


class ComparisonError(RuntimeError):
    pass


class ComparisonPhase(str, Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    SYNCED = "synced"


class ComparisonCoordinator:
    """Single writer of the zoom/pan/visibility tuple shared by compared charts.

    idle -> selecting (start_selecting) -> synced (synthesize) -> idle (close).
    ``cancel`` leaves selecting for idle and clears the selection. Charts keep
    their local state untouched while a comparison is open.
    """

    def __init__(self) -> None:
        self.phase = ComparisonPhase.IDLE
        self._selection: list[int] = []
        self._shared: ViewState | None = None

    @property
    def selection(self) -> list[int]:
        return list(self._selection)

    @property
    def is_synced(self) -> bool:
        return self.phase is ComparisonPhase.SYNCED

    def start_selecting(self) -> None:
        if self.phase is not ComparisonPhase.IDLE:
            raise ComparisonError(f"Cannot start selecting while {self.phase.value}.")
        self.phase = ComparisonPhase.SELECTING
        self._selection = []

    def toggle_chart(self, index: int) -> list[int]:
        if self.phase is not ComparisonPhase.SELECTING:
            raise ComparisonError("Charts can only be picked while selecting.")
        if index in self._selection:
            self._selection.remove(index)
        else:
            self._selection.append(index)
        return self.selection

    def is_selected(self, index: int) -> bool:
        return index in self._selection

    def cancel(self) -> None:
        if self.phase is not ComparisonPhase.SELECTING:
            raise ComparisonError("Nothing to cancel.")
        self.phase = ComparisonPhase.IDLE
        self._selection = []

    def synthesize(self) -> list[int]:
        if self.phase is not ComparisonPhase.SELECTING:
            raise ComparisonError("Select charts before synthesizing a comparison.")
        if len(self._selection) < MIN_COMPARED_CHARTS:
            raise ComparisonError(f"Pick at least {MIN_COMPARED_CHARTS} charts to compare.")
        self.phase = ComparisonPhase.SYNCED
        self._shared = ViewState()
        logger.info("Comparison synced across charts %s", self._selection)
        return self.selection

    def shared_state(self) -> ViewState:
        if self._shared is None:
            raise ComparisonError("No comparison is open.")
        return self._shared

    def update_shared(self, state: ViewState) -> None:
        if self._shared is None:
            raise ComparisonError("No comparison is open.")
        self._shared = state

    def source(self) -> SharedViewState:
        if not self.is_synced:
            raise ComparisonError("Shared view state exists only while synced.")
        return SharedViewState(self)

    def reset(self) -> ViewState:
        if not self.is_synced:
            raise ComparisonError("No comparison is open.")
        self._shared = ViewState()
        return self._shared

    def close(self) -> None:
        if not self.is_synced:
            raise ComparisonError("No comparison is open.")
        self.phase = ComparisonPhase.IDLE
        self._selection = []
        self._shared = None
        logger.info("Comparison closed")
