# -*- coding: utf-8 -*-
########################
# maze_models.py
########################
# Purpose:
# - Core data models shared by the rhythm maze pipeline.
# - Defines grid cells, per-frame movement state and the sequence display snapshot.
#
# Design notes:
# - Keep these models stable. Prefer extending with new optional fields rather than breaking changes.
# - No Qt usage. These are plain dataclasses and enums.
# - Coordinates are (x, y) tuples in maze grid space unless a name says otherwise.
#
########################
# Interfaces:
# Public types:
# - Coord = Tuple[int, int]
#
# Public enums:
# - class CellKind(enum.Enum): RHYTHM | CLEARED | WALL | START | GOAL
# - class MoveOutcome(enum.Enum): IDLE | ALLOWED | ABORTED | ARRIVED | SOLVED | EXITED
#
# Public dataclasses:
# - MazeCell(kind: CellKind, code: Optional[int])
# - MoveState(source: Coord, destination: Coord, arrived: bool)
# - SequenceDisplay(solved_codes: list[int], placeholder_count: int, playing_index: Optional[int],
#                   highlight_alpha: float)
#
# Inputs/Outputs:
# - These types are exchanged between MazeGrid, RhythmSequencePlayer, PuzzleRoom and the harness.
#
########################

from __future__ import annotations

from dataclasses import dataclass
import enum
from typing import List, Optional, Tuple

Coord = Tuple[int, int]


class CellKind(enum.Enum):
    RHYTHM = "rhythm"
    CLEARED = "cleared"
    WALL = "wall"
    START = "start"
    GOAL = "goal"


class MoveOutcome(enum.Enum):
    IDLE = "idle"
    ALLOWED = "allowed"
    ABORTED = "aborted"
    ARRIVED = "arrived"
    SOLVED = "solved"
    EXITED = "exited"


@dataclass(frozen=True)
class MazeCell:
    kind: CellKind
    code: Optional[int] = None

    def is_available(self) -> bool:
        return self.kind != CellKind.WALL


@dataclass(frozen=True)
class MoveState:
    source: Coord
    destination: Coord
    arrived: bool = False

    def is_idle(self) -> bool:
        return tuple(self.source) == tuple(self.destination)


@dataclass(frozen=True)
class SequenceDisplay:
    solved_codes: List[int]
    placeholder_count: int
    playing_index: Optional[int]
    highlight_alpha: float


def add_coords(first: Coord, second: Coord) -> Coord:
    return (int(first[0]) + int(second[0]), int(first[1]) + int(second[1]))


def neighbor_coords(coord: Coord) -> List[Coord]:
    x, y = int(coord[0]), int(coord[1])
    return [(x + 1, y), (x - 1, y), (x, y + 1), (x, y - 1)]
