# -*- coding: utf-8 -*-
########################
# room_signals.py
########################
# Purpose:
# - Qt adapter that implements every PuzzleRoom collaborator protocol by emitting signals.
# - Lets Qt widgets subscribe to cues, text, item and transition triggers without the core importing Qt.
#
# Design notes:
# - Fire-and-forget: no slot return value is ever read back.
# - Keeps a small amount of state (cue count, collection window) for UI labels and debugging.
#
########################
# Interfaces:
# Public classes:
# - class RoomSignals(PyQt6.QtCore.QObject)
#   - Signals:
#     - cueRequested(int)
#     - textChanged(str)
#     - collectionStarted(object)   payload: CollectionRequest
#     - itemPickedUp(object)        payload: map coordinate tuple
#     - transitionRequested()
#   - Methods (collaborator protocols):
#     - play_cue(cue_id: int) -> None
#     - show_text(text: str) -> None
#     - clear_text() -> None
#     - begin_collection(map_coords: list[Coord], collection_time_seconds: float) -> None
#     - pick_up_at(map_coord: Coord) -> None
#     - begin_transition() -> None
#   - Introspection:
#     - cue_count() -> int
#
# Public dataclasses:
# - CollectionRequest(map_coords: list[Coord], collection_time_seconds: float)
#
# Inputs:
# - Calls from puzzle_room.PuzzleRoom.
#
# Outputs:
# - Qt signals consumed by maze_harness.MazeHarnessWindow.
#
########################

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from PyQt6.QtCore import QObject, pyqtSignal

from maze_models import Coord


@dataclass(frozen=True)
class CollectionRequest:
    map_coords: List[Coord]
    collection_time_seconds: float


class RoomSignals(QObject):
    cueRequested = pyqtSignal(int)
    textChanged = pyqtSignal(str)
    collectionStarted = pyqtSignal(object)
    itemPickedUp = pyqtSignal(object)
    transitionRequested = pyqtSignal()

    def __init__(self, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._cue_count: int = 0
        self._collection: Optional[CollectionRequest] = None

    # ------------------------------------------------------------------
    # Collaborator protocols used by PuzzleRoom
    # ------------------------------------------------------------------

    def play_cue(self, cue_id: int) -> None:
        self._cue_count += 1
        self.cueRequested.emit(int(cue_id))

    def show_text(self, text: str) -> None:
        self.textChanged.emit(str(text))

    def clear_text(self) -> None:
        self.show_text("")

    def begin_collection(self, map_coords: List[Coord], collection_time_seconds: float) -> None:
        self._collection = CollectionRequest(
            map_coords=[(int(coord[0]), int(coord[1])) for coord in map_coords],
            collection_time_seconds=float(collection_time_seconds),
        )
        self.collectionStarted.emit(self._collection)

    def pick_up_at(self, map_coord: Coord) -> None:
        self.itemPickedUp.emit((int(map_coord[0]), int(map_coord[1])))

    def begin_transition(self) -> None:
        self.transitionRequested.emit()

    # ------------------------------------------------------------------
    # Introspection helpers
    # ------------------------------------------------------------------

    def cue_count(self) -> int:
        return self._cue_count

    def collection(self) -> Optional[CollectionRequest]:
        return self._collection


def _run_unit_tests() -> None:
    signals = RoomSignals()
    cues: List[int] = []
    texts: List[str] = []
    signals.cueRequested.connect(cues.append)
    signals.textChanged.connect(texts.append)

    signals.play_cue(163)
    signals.show_text("solved")
    signals.clear_text()
    signals.begin_collection([(2, 3)], 20.0)

    assert cues == [163]
    assert texts == ["solved", ""]
    assert signals.cue_count() == 1
    assert signals.collection() is not None
    assert signals.collection().map_coords == [(2, 3)]


if __name__ == "__main__":
    _run_unit_tests()
    print("room_signals.py: ok")
