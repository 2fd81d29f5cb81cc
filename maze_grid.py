# -*- coding: utf-8 -*-
########################
# maze_grid.py
########################
# Purpose:
# - Grid model for the rhythm maze room.
# - Owns every cell state, the player's last advanced coordinate and the cached solution path.
# - Path engine: randomized, snaking depth-first search from any available cell to the goal.
#
# Design notes:
# - No Qt usage. Pure gameplay logic.
# - Every coordinate in range is present; cells are replaced, never removed.
# - Walls are only committed when the goal stays reachable from the player (solvability invariant).
# - Cleared cells stay available, so a reroute may cut across them as a detour.
# - The cached path is owned here. Callers receive tuples and code lists, never the live path.
#
########################
# Interfaces:
# Public exceptions:
# - MazeGridError(Exception)
# - InvalidCellKind(MazeGridError)
# - AlreadyUnavailable(MazeGridError)
# - Unsolvable(MazeGridError)
#
# Public classes:
# - class MazeGrid
#   - __init__(width: int, height: int, start: Coord, goal: Coord, rhythm_codes: Sequence[int], *,
#              rng: Optional[random.Random] = None, initial_codes: Optional[dict[Coord, int]] = None,
#              path_attempts: int = 8)
#   - width() / height() / start() / goal() / player_coord()
#   - contains(coord) -> bool
#   - cell_at(coord) -> MazeCell
#   - is_available(coord) -> bool
#   - rhythm_code_at(coord) -> int
#   - rhythm_cells() -> list[tuple[Coord, int]]
#   - is_next_rhythm_code(code: int) -> bool
#   - is_square_on_future_path(coord) -> bool
#   - mark_permanently_unavailable(coord, *, anchor: Optional[Coord] = None) -> bool
#   - advance_player_to_coord(coord) -> None
#   - generate_path(from_coord) -> tuple[Coord, ...]
#   - get_next_rhythm_codes(count: int) -> list[int]
#   - solution_path() -> tuple[Coord, ...]
#   - future_path() -> tuple[Coord, ...]
#   - is_goal_reachable(from_coord, *, blocked: Iterable[Coord] = ()) -> bool
#
# Inputs:
# - Grid geometry and rhythm alphabet (from maze_config.MazeConfig).
# - Player moves reported by PuzzleRoom.
#
# Outputs:
# - Expected rhythm codes for RhythmSequencePlayer and tile codes for room_tiles.TileMap.
#
########################

from __future__ import annotations

from collections import deque
import logging
import random
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from maze_models import CellKind, Coord, MazeCell, neighbor_coords

logger = logging.getLogger(__name__)


class MazeGridError(Exception):
    pass


class InvalidCellKind(MazeGridError):
    pass


class AlreadyUnavailable(MazeGridError):
    pass


class Unsolvable(MazeGridError):
    pass


# Step ordering categories for the path search. Lower sorts first.
_STEP_RHYTHM = 0
_STEP_DETOUR = 1
_STEP_GOAL = 2


class MazeGrid:
    def __init__(
        self,
        width: int,
        height: int,
        start: Coord,
        goal: Coord,
        rhythm_codes: Sequence[int],
        *,
        rng: Optional[random.Random] = None,
        initial_codes: Optional[Dict[Coord, int]] = None,
        path_attempts: int = 8,
    ) -> None:
        self._width = int(width)
        self._height = int(height)
        self._start: Coord = (int(start[0]), int(start[1]))
        self._goal: Coord = (int(goal[0]), int(goal[1]))
        self._rhythm_codes: List[int] = [int(code) for code in rhythm_codes]
        self._rng = rng if rng is not None else random.Random()
        self._path_attempts = max(1, int(path_attempts))

        if self._width <= 0 or self._height <= 0:
            raise ValueError(f"Grid size must be positive, got {self._width}x{self._height}")
        if not self._rhythm_codes:
            raise ValueError("At least one rhythm code is required")
        if not self.contains(self._start) or not self.contains(self._goal):
            raise ValueError(f"Start {self._start} and goal {self._goal} must lie inside the grid")
        if self._start == self._goal:
            raise ValueError("Start and goal must be different cells")

        seeded_codes = dict(initial_codes or {})
        self._cells: Dict[Coord, MazeCell] = {}
        for y in range(self._height):
            for x in range(self._width):
                coord = (x, y)
                if coord == self._start:
                    self._cells[coord] = MazeCell(CellKind.START)
                elif coord == self._goal:
                    self._cells[coord] = MazeCell(CellKind.GOAL)
                elif coord in seeded_codes:
                    self._cells[coord] = MazeCell(CellKind.RHYTHM, int(seeded_codes[coord]))
                else:
                    self._cells[coord] = MazeCell(CellKind.RHYTHM, self._rng.choice(self._rhythm_codes))

        self._player_coord: Coord = self._start
        self._solution_path: Tuple[Coord, ...] = ()
        self._path_index = 0

    # ------------------------------------------------------------------
    # Geometry and cell queries
    # ------------------------------------------------------------------

    def width(self) -> int:
        return self._width

    def height(self) -> int:
        return self._height

    def start(self) -> Coord:
        return self._start

    def goal(self) -> Coord:
        return self._goal

    def player_coord(self) -> Coord:
        return self._player_coord

    def contains(self, coord: Coord) -> bool:
        return 0 <= int(coord[0]) < self._width and 0 <= int(coord[1]) < self._height

    def cell_at(self, coord: Coord) -> MazeCell:
        key = (int(coord[0]), int(coord[1]))
        if key not in self._cells:
            raise IndexError(f"Coordinate {key} out of bounds")
        return self._cells[key]

    def is_available(self, coord: Coord) -> bool:
        return self.contains(coord) and self.cell_at(coord).is_available()

    def rhythm_code_at(self, coord: Coord) -> int:
        cell = self.cell_at(coord)
        if cell.kind not in (CellKind.RHYTHM, CellKind.WALL) or cell.code is None:
            raise InvalidCellKind(f"Cell {tuple(coord)} is {cell.kind.value} and carries no rhythm code")
        return int(cell.code)

    def rhythm_cells(self) -> List[Tuple[Coord, int]]:
        return [
            (coord, int(cell.code))
            for coord, cell in sorted(self._cells.items(), key=lambda item: (item[0][1], item[0][0]))
            if cell.kind == CellKind.RHYTHM and cell.code is not None
        ]

    # ------------------------------------------------------------------
    # Cached path queries
    # ------------------------------------------------------------------

    def solution_path(self) -> Tuple[Coord, ...]:
        return tuple(self._solution_path)

    def future_path(self) -> Tuple[Coord, ...]:
        return tuple(self._solution_path[self._path_index + 1:])

    def get_next_rhythm_codes(self, count: int) -> List[int]:
        wanted = int(count)
        codes: List[int] = []
        if wanted <= 0:
            return codes
        for coord in self.future_path():
            cell = self._cells[coord]
            if cell.kind != CellKind.RHYTHM or cell.code is None:
                continue
            codes.append(int(cell.code))
            if len(codes) >= wanted:
                break
        return codes

    def is_next_rhythm_code(self, code: int) -> bool:
        next_codes = self.get_next_rhythm_codes(1)
        return bool(next_codes) and next_codes[0] == int(code)

    def is_square_on_future_path(self, coord: Coord) -> bool:
        return (int(coord[0]), int(coord[1])) in self.future_path()

    def is_goal_reachable(self, from_coord: Coord, *, blocked: Iterable[Coord] = ()) -> bool:
        blocked_set: Set[Coord] = {(int(item[0]), int(item[1])) for item in blocked}
        origin = (int(from_coord[0]), int(from_coord[1]))
        if origin in blocked_set or not self.is_available(origin):
            return False

        seen: Set[Coord] = {origin}
        queue = deque([origin])
        while queue:
            current = queue.popleft()
            if current == self._goal:
                return True
            for neighbor in neighbor_coords(current):
                if neighbor in seen or neighbor in blocked_set or not self.is_available(neighbor):
                    continue
                seen.add(neighbor)
                queue.append(neighbor)
        return False

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def mark_permanently_unavailable(self, coord: Coord, *, anchor: Optional[Coord] = None) -> bool:
        """
        Turn a rhythm cell into a wall that keeps its code.

        Returns True when the wall was committed. Start, goal and cleared cells are left alone.
        A wall that would cut the anchor (default: the player's coordinate) off from the goal
        is refused and the cell stays a rhythm cell.
        """
        key = (int(coord[0]), int(coord[1]))
        cell = self.cell_at(key)
        if cell.kind == CellKind.WALL:
            raise AlreadyUnavailable(f"Cell {key} is already a wall")
        if cell.kind != CellKind.RHYTHM:
            return False

        anchor_coord = self._player_coord if anchor is None else (int(anchor[0]), int(anchor[1]))
        if not self.contains(anchor_coord):
            anchor_coord = self._player_coord
        if not self.is_goal_reachable(anchor_coord, blocked=[key]):
            logger.warning("Refusing wall at %s: goal would become unreachable from %s", key, anchor_coord)
            return False

        self._cells[key] = MazeCell(CellKind.WALL, cell.code)
        return True

    def advance_player_to_coord(self, coord: Coord) -> None:
        key = (int(coord[0]), int(coord[1]))
        cell = self.cell_at(key)
        if cell.kind == CellKind.WALL:
            raise InvalidCellKind(f"Cannot advance onto wall cell {key}")
        if cell.kind == CellKind.RHYTHM:
            self._cells[key] = MazeCell(CellKind.CLEARED)

        future = self.future_path()
        if key == self._player_coord:
            return
        if key in future:
            self._path_index += 1 + future.index(key)
            self._player_coord = key
            return

        logger.debug("Player left the solution path at %s, rerouting", key)
        self.generate_path(key)

    def generate_path(self, from_coord: Coord) -> Tuple[Coord, ...]:
        origin = (int(from_coord[0]), int(from_coord[1]))
        if not self.is_available(origin):
            raise InvalidCellKind(f"Path origin {origin} is not an available cell")

        best_path: Optional[List[Coord]] = None
        best_score = -1
        for _attempt in range(self._path_attempts):
            candidate = self._search_path(origin)
            if candidate is None:
                logger.error("No path from %s to goal %s: solvability invariant broken", origin, self._goal)
                raise Unsolvable(f"Goal {self._goal} is unreachable from {origin}")
            score = sum(1 for step in candidate if self._cells[step].kind == CellKind.RHYTHM)
            if score > best_score:
                best_path = candidate
                best_score = score

        assert best_path is not None
        self._solution_path = tuple(best_path)
        self._path_index = 0
        self._player_coord = origin
        adjusted = self._bias_neighbor_codes()
        logger.debug(
            "Generated path from %s: length=%s rhythm_cells=%s adjusted_neighbors=%s",
            origin,
            len(self._solution_path),
            best_score,
            adjusted,
        )
        return self.solution_path()

    # ------------------------------------------------------------------
    # Path engine helpers
    # ------------------------------------------------------------------

    def _search_path(self, origin: Coord) -> Optional[List[Coord]]:
        """
        Randomized depth-first search that reaches the goal as late as it can.

        Rhythm cells are tried before cleared detours and the goal is tried last. Among rhythm cells
        the ones with the fewest onward options go first, which makes the route hug walls and edges
        and snake through the free space. The returned path is the DFS stack when the goal is pushed,
        so it is simple and 4-connected.
        """
        visited: Set[Coord] = {origin}
        stack: List[Tuple[Coord, List[Coord]]] = [(origin, self._ordered_steps(origin, visited))]

        while stack:
            current, candidates = stack[-1]
            if current == self._goal:
                return [entry[0] for entry in stack]

            pushed = False
            while candidates:
                candidate = candidates.pop(0)
                if candidate in visited:
                    continue
                visited.add(candidate)
                stack.append((candidate, self._ordered_steps(candidate, visited)))
                pushed = True
                break

            if not pushed:
                stack.pop()

        return None

    def _ordered_steps(self, coord: Coord, visited: Set[Coord]) -> List[Coord]:
        keyed: List[Tuple[int, int, float, Coord]] = []
        for neighbor in neighbor_coords(coord):
            if neighbor in visited or not self.is_available(neighbor):
                continue
            kind = self._cells[neighbor].kind
            if kind == CellKind.GOAL:
                category = _STEP_GOAL
            elif kind == CellKind.RHYTHM:
                category = _STEP_RHYTHM
            else:
                category = _STEP_DETOUR
            keyed.append((category, self._onward_degree(neighbor, visited), self._rng.random(), neighbor))
        keyed.sort()
        return [entry[3] for entry in keyed]

    def _onward_degree(self, coord: Coord, visited: Set[Coord]) -> int:
        degree = 0
        for neighbor in neighbor_coords(coord):
            if neighbor in visited or neighbor == self._goal:
                continue
            if self.is_available(neighbor):
                degree += 1
        return degree

    def _bias_neighbor_codes(self) -> int:
        """
        Recode rhythm cells beside the path that would offer the same code as the next path step.

        Alternate routes with matching codes can still exist; this only makes the path the obvious read.
        """
        path = self._solution_path
        on_path = set(path)
        forbidden_codes: Dict[Coord, Set[int]] = {}

        for index in range(len(path) - 1):
            following = self._cells[path[index + 1]]
            if following.kind != CellKind.RHYTHM or following.code is None:
                continue
            for neighbor in neighbor_coords(path[index]):
                if neighbor in on_path or not self.contains(neighbor):
                    continue
                if self._cells[neighbor].kind != CellKind.RHYTHM:
                    continue
                forbidden_codes.setdefault(neighbor, set()).add(int(following.code))

        adjusted = 0
        for neighbor in sorted(forbidden_codes.keys()):
            cell = self._cells[neighbor]
            forbidden = forbidden_codes[neighbor]
            if cell.code not in forbidden:
                continue
            alternatives = [code for code in self._rhythm_codes if code not in forbidden]
            if not alternatives:
                continue
            self._cells[neighbor] = MazeCell(CellKind.RHYTHM, self._rng.choice(alternatives))
            adjusted += 1
        return adjusted


def _run_unit_tests() -> None:
    # Single row corridor: the path is forced.
    corridor = MazeGrid(
        5,
        1,
        (0, 0),
        (4, 0),
        [3, 4, 5],
        rng=random.Random(1),
        initial_codes={(1, 0): 3, (2, 0): 5, (3, 0): 4},
    )
    path = corridor.generate_path((0, 0))
    assert path == ((0, 0), (1, 0), (2, 0), (3, 0), (4, 0))
    assert corridor.get_next_rhythm_codes(2) == [3, 5]
    assert corridor.get_next_rhythm_codes(10) == [3, 5, 4]
    assert corridor.is_next_rhythm_code(3)
    assert not corridor.is_next_rhythm_code(5)

    corridor.advance_player_to_coord((1, 0))
    assert corridor.cell_at((1, 0)).kind == CellKind.CLEARED
    assert corridor.get_next_rhythm_codes(1) == [5]
    assert not corridor.is_square_on_future_path((1, 0))

    # A wall that would cut the corridor is refused.
    assert corridor.mark_permanently_unavailable((2, 0)) is False
    assert corridor.cell_at((2, 0)).kind == CellKind.RHYTHM

    try:
        corridor.rhythm_code_at((1, 0))
    except InvalidCellKind:
        pass
    else:
        raise AssertionError("cleared cells carry no rhythm code")

    # Open field: walls are committed and every path is valid.
    field = MazeGrid(6, 4, (0, 1), (5, 2), [3, 4, 5, 6, 7, 8], rng=random.Random(7))
    path = field.generate_path((0, 1))
    assert path[0] == (0, 1)
    assert path[-1] == (5, 2)
    assert len(set(path)) == len(path)
    wall_target = (3, 3)
    wall_code = field.rhythm_code_at(wall_target)
    assert field.mark_permanently_unavailable(wall_target) is True
    assert field.cell_at(wall_target).kind == CellKind.WALL
    assert field.rhythm_code_at(wall_target) == wall_code
    try:
        field.mark_permanently_unavailable(wall_target)
    except AlreadyUnavailable:
        pass
    else:
        raise AssertionError("second wall on the same cell must fail")
    assert field.mark_permanently_unavailable((0, 1)) is False


if __name__ == "__main__":
    _run_unit_tests()
    print("maze_grid.py: ok")
